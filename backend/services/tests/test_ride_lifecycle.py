import threading
import time
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.db import OperationalError, connection, transaction
from django.test import SimpleTestCase, TestCase, TransactionTestCase

from accounts.models import User
from drivers.models import DriverProfile
from rides.models import Ride
from rides.serializers import RideSerializer, RiderRideSerializer
from realtime.registry import ConnectionRegistry
from services.maps import GoogleMapsService, RouteEstimate, ProviderUnavailable
from services.ride_management import (
	generate_otp,
	get_fare_quote,
	create_ride,
	cancel_ride,
	accept_ride,
	start_ride,
	complete_ride,
	ValidationError,
	RideNotFoundError,
	ForbiddenError,
	ConflictError,
	InvalidOTPError,
)


class RideLifecycleTestCase(TestCase):

	def setUp(self):
		self.rider = User.objects.create_user(
			username="rider", password="pass1234", role="user", phone_number="9000000000",
		)
		self.other_rider = User.objects.create_user(username="rider_two", password="pass1234", role="user")
		self.driver = User.objects.create_user(
			username="driver_one", password="driver1234", role="driver", first_name="Ravi",
		)
		self.other_driver = User.objects.create_user(username="driver_two", password="driver1234", role="driver")
		self.profile = DriverProfile.objects.create(
			user=self.driver, vehicle_number="DL-1001", vehicle_color="White",
		)
		DriverProfile.objects.create(user=self.other_driver, vehicle_number="DL-1002")

		self.maps = MagicMock(spec=GoogleMapsService)
		self.maps.get_distance_time.return_value = RouteEstimate(5.0, 10, "5.0 km", "10 mins")

	def make_ride(self, status=Ride.STATUS_PENDING, driver=None, fare="155.00", otp="4821", **kwargs):
		return Ride.objects.create(
			passenger=self.rider,
			driver=driver,
			pickup_address="A",
			dropoff_address="B",
			vehicle_type="car",
			fare=Decimal(fare),
			status=status,
			otp=otp,
			**kwargs
		)


class GenerateOtpTests(SimpleTestCase):

	def test_passcodes_are_four_digits(self):
		for _ in range(200):
			otp = generate_otp()
			self.assertEqual(len(otp), 4)
			self.assertTrue(otp.isdigit())
			self.assertGreaterEqual(int(otp), 1000)


class FareQuoteTests(RideLifecycleTestCase):

	def test_quote_prices_the_provider_route(self):
		quote = get_fare_quote("A", "B", "car", maps_service=self.maps)

		self.assertEqual(quote.fare, Decimal("155.00"))
		self.assertEqual(quote.vehicle_type, "car")
		self.assertEqual(quote.distance_km, 5.0)
		self.assertEqual(quote.duration_min, 10)
		self.assertEqual(quote.duration_text, "10 mins")
		self.maps.get_distance_time.assert_called_once_with("A", "B")

	def test_quote_requires_both_locations(self):
		with self.assertRaises(ValidationError):
			get_fare_quote("A", "", "car", maps_service=self.maps)

	def test_provider_errors_propagate_from_quote(self):
		self.maps.get_distance_time.side_effect = ProviderUnavailable("down")

		with self.assertRaises(ProviderUnavailable):
			get_fare_quote("A", "B", "car", maps_service=self.maps)


class CreateRideTests(RideLifecycleTestCase):

	def test_new_ride_is_pending_with_passcode_and_fare(self):
		result = create_ride(self.rider, "A", "B", "car", maps_service=self.maps)
		ride = result.ride

		self.assertTrue(result.success)
		self.assertEqual(ride.status, Ride.STATUS_PENDING)
		self.assertEqual(len(ride.otp), 4)
		self.assertEqual(ride.fare, Decimal("155.00"))
		self.assertIsNone(ride.driver_id)
		self.assertEqual(ride.payment_method, Ride.PAYMENT_CASH)

	def test_supplied_fare_is_kept_as_is(self):
		result = create_ride(self.rider, "A", "B", "car", fare=Decimal("99.50"), maps_service=self.maps)

		self.assertEqual(result.ride.fare, Decimal("99.50"))
		self.maps.get_distance_time.assert_not_called()

	def test_fare_falls_back_to_zero_when_pricing_fails(self):
		self.maps.get_distance_time.side_effect = ProviderUnavailable("down")

		with self.assertLogs("services.ride_management.ride_lifecycle", level="WARNING"):
			result = create_ride(self.rider, "A", "B", "car", maps_service=self.maps)

		self.assertEqual(result.ride.fare, Decimal("0.00"))
		self.assertEqual(result.ride.status, Ride.STATUS_PENDING)

	def test_required_fields_are_validated(self):
		with self.assertRaises(ValidationError):
			create_ride(self.rider, "", "B", "car", maps_service=self.maps)
		with self.assertRaises(ValidationError):
			create_ride(self.rider, "A", "  ", "car", maps_service=self.maps)
		with self.assertRaises(ValidationError):
			create_ride(self.rider, "A", "B", "", maps_service=self.maps)
		with self.assertRaises(ValidationError):
			create_ride(self.rider, "A", "B", "car", fare="-1", maps_service=self.maps)
		with self.assertRaises(ValidationError):
			create_ride(self.rider, "A", "B", "car", payment_method="barter", maps_service=self.maps)

		self.assertFalse(Ride.objects.exists())

	def test_unrepresentable_fare_is_a_validation_error(self):
		with self.assertRaises(ValidationError):
			create_ride(self.rider, "A", "B", "car", fare="1e40", maps_service=self.maps)

		self.assertFalse(Ride.objects.exists())

	def test_passcode_is_left_out_of_default_reads(self):
		ride = create_ride(self.rider, "A", "B", "car", maps_service=self.maps).ride

		loaded = Ride.objects.get(pk=ride.pk)
		self.assertIn("otp", loaded.get_deferred_fields())
		self.assertEqual(Ride.objects.with_otp().get(pk=ride.pk).otp, ride.otp)
		self.assertNotIn("otp", RideSerializer(ride).data)
		self.assertEqual(RiderRideSerializer(ride).data["otp"], ride.otp)

	@patch("services.matching.submit_ride_dispatch")
	def test_dispatch_is_queued_after_commit(self, mock_dispatch):
		with self.captureOnCommitCallbacks(execute=False) as callbacks:
			ride = create_ride(
				self.rider, "A", "B", "auto",
				payment_method=Ride.PAYMENT_ELECTRONIC, maps_service=self.maps,
			).ride

		mock_dispatch.assert_not_called()
		self.assertEqual(len(callbacks), 1)

		callbacks[0]()
		mock_dispatch.assert_called_once_with(
			ride.id, "A", "B", vehicle_type="auto", payment_method=Ride.PAYMENT_ELECTRONIC,
		)


class AcceptRideTests(RideLifecycleTestCase):

	def test_accept_assigns_driver(self):
		ride = self.make_ride()

		result = accept_ride(self.driver, ride.id)

		self.assertEqual(result.ride.status, Ride.STATUS_ACCEPTED)
		self.assertEqual(result.ride.driver_id, self.driver.id)
		self.assertIsNotNone(result.ride.accepted_at)

	def test_second_accept_conflicts_and_keeps_first_driver(self):
		ride = self.make_ride()

		outcomes = []
		for driver in (self.driver, self.other_driver):
			try:
				accept_ride(driver, ride.id)
				outcomes.append("ok")
			except ConflictError as e:
				outcomes.append("conflict")
				self.assertEqual(e.current_status, Ride.STATUS_ACCEPTED)

		self.assertEqual(outcomes, ["ok", "conflict"])
		ride.refresh_from_db()
		self.assertEqual(ride.driver_id, self.driver.id)

	def test_same_driver_cannot_accept_twice(self):
		ride = self.make_ride()
		accept_ride(self.driver, ride.id)

		with self.assertRaises(ConflictError):
			accept_ride(self.driver, ride.id)

	def test_accept_on_terminal_ride_conflicts(self):
		ride = self.make_ride(status=Ride.STATUS_CANCELLED)

		with self.assertRaises(ConflictError) as ctx:
			accept_ride(self.driver, ride.id)
		self.assertEqual(ctx.exception.as_dict()["current_status"], Ride.STATUS_CANCELLED)

	def test_unknown_ride_is_not_found(self):
		with self.assertRaises(RideNotFoundError):
			accept_ride(self.driver, 424242)

	def test_banned_driver_cannot_accept(self):
		DriverProfile.objects.filter(user=self.driver).update(status=DriverProfile.STATUS_BANNED)
		ride = self.make_ride()

		with self.assertRaises(ForbiddenError):
			accept_ride(self.driver, ride.id)
		ride.refresh_from_db()
		self.assertEqual(ride.status, Ride.STATUS_PENDING)

	@patch("realtime.notifications.send_to_connection", return_value=True)
	def test_rider_is_told_about_the_driver_and_passcode(self, mock_send):
		registry = ConnectionRegistry()
		registry.connect(self.rider.id, "user", "chan-rider")
		ride = self.make_ride()

		with self.captureOnCommitCallbacks(execute=True):
			accept_ride(self.driver, ride.id, registry=registry)

		handle, event, payload = mock_send.call_args[0]
		self.assertEqual(handle, "chan-rider")
		self.assertEqual(event, "ride-accepted")
		self.assertEqual(payload["otp"], "4821")
		self.assertEqual(payload["driver"]["name"], "Ravi")
		self.assertEqual(payload["driver"]["vehicle"]["number_plate"], "DL-1001")
		self.assertEqual(payload["ride"]["status"], Ride.STATUS_ACCEPTED)

	@patch("realtime.notifications.send_to_connection", return_value=True)
	def test_offline_rider_is_not_an_error(self, mock_send):
		ride = self.make_ride()

		with self.captureOnCommitCallbacks(execute=True):
			result = accept_ride(self.driver, ride.id, registry=ConnectionRegistry())

		self.assertTrue(result.success)
		mock_send.assert_not_called()


class StartRideTests(RideLifecycleTestCase):

	def test_correct_passcode_starts_the_ride(self):
		ride = self.make_ride(status=Ride.STATUS_ACCEPTED, driver=self.driver)

		result = start_ride(self.driver, ride.id, "4821")

		self.assertEqual(result.ride.status, Ride.STATUS_IN_PROGRESS)
		self.assertIsNotNone(result.ride.started_at)

	def test_wrong_passcode_leaves_ride_accepted(self):
		ride = self.make_ride(status=Ride.STATUS_ACCEPTED, driver=self.driver)

		for attempt in ("0000", " 4821", "4821 ", "", None):
			with self.assertRaises(InvalidOTPError):
				start_ride(self.driver, ride.id, attempt)

		ride.refresh_from_db()
		self.assertEqual(ride.status, Ride.STATUS_ACCEPTED)
		self.assertIsNone(ride.started_at)

	def test_other_driver_is_forbidden(self):
		ride = self.make_ride(status=Ride.STATUS_ACCEPTED, driver=self.driver)

		with self.assertRaises(ForbiddenError):
			start_ride(self.other_driver, ride.id, "4821")

	def test_unassigned_ride_is_forbidden(self):
		ride = self.make_ride()

		with self.assertRaises(ForbiddenError):
			start_ride(self.driver, ride.id, "4821")

	def test_start_requires_accepted_status(self):
		ride = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver)

		with self.assertRaises(ConflictError):
			start_ride(self.driver, ride.id, "4821")

	def test_unknown_ride_is_not_found(self):
		with self.assertRaises(RideNotFoundError):
			start_ride(self.driver, 424242, "4821")


class CompleteRideTests(RideLifecycleTestCase):

	def test_complete_from_in_progress_updates_driver_totals(self):
		ride = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver)

		result = complete_ride(self.driver, ride.id, distance_km="5.25", duration_min=18)

		self.assertEqual(result.ride.status, Ride.STATUS_COMPLETED)
		self.assertIsNotNone(result.ride.completed_at)
		self.assertEqual(result.ride.fare, Decimal("155.00"))
		self.assertEqual(result.ride.distance_km, Decimal("5.25"))
		self.assertEqual(result.ride.duration_min, 18)

		self.profile.refresh_from_db()
		self.assertEqual(self.profile.total_rides, 1)
		self.assertEqual(self.profile.total_earnings, Decimal("155.00"))
		self.assertEqual(self.profile.total_distance, Decimal("5.25"))
		self.assertEqual(result.extra["driver_totals"]["total_rides"], 1)

	def test_complete_straight_from_accepted(self):
		ride = self.make_ride(status=Ride.STATUS_ACCEPTED, driver=self.driver)

		result = complete_ride(self.driver, ride.id)

		self.assertEqual(result.ride.status, Ride.STATUS_COMPLETED)

	def test_fare_override_is_recorded_and_earned(self):
		ride = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver)

		complete_ride(self.driver, ride.id, fare=Decimal("200.00"))

		ride.refresh_from_db()
		self.profile.refresh_from_db()
		self.assertEqual(ride.fare, Decimal("200.00"))
		self.assertEqual(self.profile.total_earnings, Decimal("200.00"))

	def test_counters_accumulate_across_rides(self):
		first = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver, fare="100.00")
		second = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver, fare="50.50")

		complete_ride(self.driver, first.id, distance_km=4)
		complete_ride(self.driver, second.id, distance_km="1.5")

		self.profile.refresh_from_db()
		self.assertEqual(self.profile.total_rides, 2)
		self.assertEqual(self.profile.total_earnings, Decimal("150.50"))
		self.assertEqual(self.profile.total_distance, Decimal("5.50"))

	def test_other_driver_is_forbidden(self):
		ride = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver)

		with self.assertRaises(ForbiddenError):
			complete_ride(self.other_driver, ride.id)

	def test_completed_ride_cannot_complete_again(self):
		ride = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver)
		complete_ride(self.driver, ride.id)

		with self.assertRaises(ConflictError):
			complete_ride(self.driver, ride.id)

		self.profile.refresh_from_db()
		self.assertEqual(self.profile.total_rides, 1)

	def test_pending_ride_cannot_be_completed(self):
		ride = self.make_ride()

		with self.assertRaises(ForbiddenError):
			complete_ride(self.driver, ride.id)

	def test_negative_override_is_rejected(self):
		ride = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver)

		with self.assertRaises(ValidationError):
			complete_ride(self.driver, ride.id, fare="-10")

		ride.refresh_from_db()
		self.assertEqual(ride.status, Ride.STATUS_IN_PROGRESS)

	def test_unrepresentable_override_is_rejected(self):
		ride = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver)

		with self.assertRaises(ValidationError):
			complete_ride(self.driver, ride.id, fare="1e40")

		ride.refresh_from_db()
		self.assertEqual(ride.status, Ride.STATUS_IN_PROGRESS)

	@patch("realtime.notifications.send_to_connection", return_value=True)
	def test_rider_is_notified_of_completion(self, mock_send):
		registry = ConnectionRegistry()
		registry.connect(self.rider.id, "user", "chan-rider")
		ride = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver)

		with self.captureOnCommitCallbacks(execute=True):
			complete_ride(self.driver, ride.id, registry=registry)

		mock_send.assert_called_once_with("chan-rider", "ride-completed", {
			"ride_id": ride.id,
			"payment_method": Ride.PAYMENT_CASH,
			"amount": 155.0,
			"message": "Your ride has been completed",
		})


class CancelRideTests(RideLifecycleTestCase):

	def test_rider_cancels_pending_ride(self):
		ride = self.make_ride()

		result = cancel_ride(self.rider, ride.id, reason="Changed plans")

		self.assertEqual(result.ride.status, Ride.STATUS_CANCELLED)
		self.assertEqual(result.ride.cancellation_reason, "Changed plans")
		self.assertIsNotNone(result.ride.cancelled_at)

	@patch("realtime.notifications.send_to_connection", return_value=True)
	def test_assigned_driver_is_told_about_cancellation(self, mock_send):
		registry = ConnectionRegistry()
		registry.connect(self.driver.id, "driver", "chan-driver")
		ride = self.make_ride(status=Ride.STATUS_ACCEPTED, driver=self.driver)

		with self.captureOnCommitCallbacks(execute=True):
			result = cancel_ride(self.rider, ride.id, registry=registry)

		self.assertTrue(result.extra["was_assigned"])
		handle, event, payload = mock_send.call_args[0]
		self.assertEqual((handle, event, payload["ride_id"]), ("chan-driver", "ride-cancelled", ride.id))

	def test_started_ride_cannot_be_cancelled(self):
		ride = self.make_ride(status=Ride.STATUS_IN_PROGRESS, driver=self.driver)

		with self.assertRaises(ConflictError) as ctx:
			cancel_ride(self.rider, ride.id)
		self.assertEqual(ctx.exception.current_status, Ride.STATUS_IN_PROGRESS)

	def test_other_riders_ride_is_not_found(self):
		ride = self.make_ride()

		with self.assertRaises(RideNotFoundError):
			cancel_ride(self.other_rider, ride.id)


class ConcurrentAcceptTests(TransactionTestCase):
	"""Two drivers racing for the same ride on separate connections."""

	LOCK_RETRIES = 200

	def setUp(self):
		self.rider = User.objects.create_user(username="rider", password="pass1234", role="user")
		self.drivers = []
		for n in range(2):
			driver = User.objects.create_user(username=f"racer_{n}", password="driver1234", role="driver")
			DriverProfile.objects.create(user=driver, vehicle_number=f"DL-200{n}")
			self.drivers.append(driver)
		self.ride = Ride.objects.create(
			passenger=self.rider, pickup_address="A", dropoff_address="B", otp="4821",
		)

	def _accept_when_released(self, driver, barrier, outcomes):
		try:
			barrier.wait()
			for _ in range(self.LOCK_RETRIES):
				try:
					accept_ride(driver, self.ride.id, registry=ConnectionRegistry())
				except ConflictError as e:
					outcomes.append(("conflict", driver.id, e.current_status))
					return
				except OperationalError:
					# SQLite reports a locked table instead of waiting
					time.sleep(0.005)
					continue
				outcomes.append(("ok", driver.id, None))
				return
			outcomes.append(("locked", driver.id, None))
		finally:
			connection.close()

	def test_exactly_one_concurrent_accept_wins(self):
		barrier = threading.Barrier(len(self.drivers))
		outcomes = []
		threads = [
			threading.Thread(target=self._accept_when_released, args=(driver, barrier, outcomes))
			for driver in self.drivers
		]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join(timeout=30)

		self.assertEqual(sorted(kind for kind, _, _ in outcomes), ["conflict", "ok"])
		winner = next(driver_id for kind, driver_id, _ in outcomes if kind == "ok")
		conflict_status = next(status for kind, _, status in outcomes if kind == "conflict")
		self.assertEqual(conflict_status, Ride.STATUS_ACCEPTED)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, Ride.STATUS_ACCEPTED)
		self.assertEqual(self.ride.driver_id, winner)


class CreateRideTransactionTests(TransactionTestCase):

	@patch("services.matching.submit_ride_dispatch")
	def test_fare_is_quoted_before_the_transaction_opens(self, mock_dispatch):
		rider = User.objects.create_user(username="rider", password="pass1234", role="user")
		in_transaction = []

		def route(pickup, dropoff):
			in_transaction.append(transaction.get_connection().in_atomic_block)
			return RouteEstimate(5.0, 10, "5.0 km", "10 mins")

		maps = MagicMock(spec=GoogleMapsService)
		maps.get_distance_time.side_effect = route

		ride = create_ride(rider, "A", "B", "car", maps_service=maps).ride

		self.assertEqual(in_transaction, [False])
		self.assertEqual(ride.fare, Decimal("155.00"))
		mock_dispatch.assert_called_once_with(
			ride.id, "A", "B", vehicle_type="car", payment_method=Ride.PAYMENT_CASH,
		)
