"""
Background execution of ride dispatch.

Dispatch jobs run on a process-local thread pool so the HTTP response that
created the ride never waits for routing, driver search or push delivery.
Jobs report nothing back to the caller; failures are logged.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from django.conf import settings
from django.db import close_old_connections

logger = logging.getLogger(__name__)

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_executor() -> ThreadPoolExecutor:
    """Get the process-wide dispatch thread pool."""
    global _executor
    if _executor is None:
        with _executor_lock:
            if _executor is None:
                _executor = ThreadPoolExecutor(
                    max_workers=getattr(settings, "DISPATCH_MAX_WORKERS", 4),
                    thread_name_prefix="ride-dispatch",
                )
    return _executor


def _run_job(func: Callable, *args, **kwargs) -> None:
    try:
        func(*args, **kwargs)
    except Exception:
        logger.exception("Background job %s failed", getattr(func, "__name__", func))


def _run_pooled_job(func: Callable, *args, **kwargs) -> None:
    # Worker threads own their DB connections
    try:
        _run_job(func, *args, **kwargs)
    finally:
        close_old_connections()


def submit(func: Callable, *args, **kwargs) -> Optional[Future]:
    """
    Run ``func`` detached from the caller.

    With ``DISPATCH_RUN_INLINE`` the job runs synchronously in the calling
    thread (used by tests); errors are still logged, not raised.
    """
    if getattr(settings, "DISPATCH_RUN_INLINE", False):
        _run_job(func, *args, **kwargs)
        return None
    return get_executor().submit(_run_pooled_job, func, *args, **kwargs)


def submit_ride_dispatch(
    ride_id: int,
    pickup,
    dropoff,
    vehicle_type: Optional[str] = None,
    payment_method: Optional[str] = None,
) -> Optional[Future]:
    """Queue the offer fan-out for a freshly created ride."""
    from .offer_dispatch import offer_ride

    logger.debug("Queueing dispatch for ride %s", ride_id)
    return submit(
        offer_ride,
        ride_id,
        pickup,
        dropoff,
        vehicle_type=vehicle_type,
        payment_method=payment_method,
    )
