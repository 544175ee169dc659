from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, TestCase, override_settings

from accounts.models import User
from drivers.models import DriverProfile
from rides.models import Ride
from realtime.registry import ConnectionRegistry
from common.utils import calculate_distance_km
from services.maps import GoogleMapsService, RouteEstimate, RouteNotFound, ProviderUnavailable
from services.matching import find_drivers_in_radius, offer_ride
from services.matching import dispatcher

# New Delhi; 0.044966 degrees of latitude is ~5 km
CENTER = (Decimal("28.613900"), Decimal("77.209000"))
FIVE_KM_NORTH = (Decimal("28.658866"), Decimal("77.209000"))
FALLBACK = (Decimal("28.704100"), Decimal("77.102500"))


def make_driver(username, vehicle_number, location=None, status=DriverProfile.STATUS_ACTIVE):
	user = User.objects.create_user(username=username, password="driver1234", role="driver")
	profile = DriverProfile.objects.create(
		user=user,
		vehicle_number=vehicle_number,
		status=status,
		current_latitude=location[0] if location else None,
		current_longitude=location[1] if location else None,
	)
	return user, profile


class FindDriversInRadiusTests(TestCase):

	def setUp(self):
		self.near_user, _ = make_driver("near", "DL-0001", CENTER)
		self.far_user, _ = make_driver("five_km", "DL-0002", FIVE_KM_NORTH)
		make_driver("inactive", "DL-0003", CENTER, status=DriverProfile.STATUS_INACTIVE)
		make_driver("banned", "DL-0004", CENTER, status=DriverProfile.STATUS_BANNED)
		make_driver("no_location", "DL-0005")

	def test_reference_points_are_five_km_apart(self):
		distance = calculate_distance_km(*CENTER, *FIVE_KM_NORTH)
		self.assertAlmostEqual(distance, 5.0, places=2)

	def test_driver_five_km_away_is_included_at_ten_km(self):
		candidates = find_drivers_in_radius(float(CENTER[0]), float(CENTER[1]), radius_km=10)

		self.assertEqual([c.driver_id for c in candidates], [self.near_user.id, self.far_user.id])
		self.assertAlmostEqual(candidates[1].distance_km, 5.0, places=2)

	def test_driver_five_km_away_is_excluded_at_four_km(self):
		candidates = find_drivers_in_radius(float(CENTER[0]), float(CENTER[1]), radius_km=4)

		self.assertEqual([c.driver_id for c in candidates], [self.near_user.id])

	def test_inactive_banned_and_unlocated_drivers_are_never_returned(self):
		candidates = find_drivers_in_radius(float(CENTER[0]), float(CENTER[1]), radius_km=20000)
		usernames = {c.profile.user.username for c in candidates}

		self.assertEqual(usernames, {"near", "five_km"})

	@override_settings(DISPATCH_RADIUS_KM=1)
	def test_default_radius_comes_from_settings(self):
		candidates = find_drivers_in_radius(float(CENTER[0]), float(CENTER[1]))

		self.assertEqual([c.driver_id for c in candidates], [self.near_user.id])

	def test_no_qualifying_driver_is_an_empty_list(self):
		self.assertEqual(find_drivers_in_radius(0.0, 0.0, radius_km=10), [])


@patch("realtime.notifications.send_to_connection", return_value=True)
class OfferRideTests(TestCase):

	def setUp(self):
		self.rider = User.objects.create_user(
			username="rider", password="pass1234", role="user", first_name="Asha",
		)
		self.driver, _ = make_driver("driver_one", "DL-1001", CENTER)
		self.ride = Ride.objects.create(
			passenger=self.rider,
			pickup_address="Connaught Place",
			dropoff_address="India Gate",
			pickup_latitude=CENTER[0],
			pickup_longitude=CENTER[1],
			vehicle_type="car",
			fare=Decimal("155.00"),
			otp="4321",
		)
		self.registry = ConnectionRegistry()
		self.maps = MagicMock(spec=GoogleMapsService)
		self.maps.get_distance_time.return_value = RouteEstimate(5.0, 10, "5.0 km", "10 mins")

	def _offer(self, ride=None):
		ride = ride or self.ride
		return offer_ride(
			ride.id,
			ride.pickup_address,
			ride.dropoff_address,
			vehicle_type="car",
			payment_method="cash",
			registry=self.registry,
			maps_service=self.maps,
		)

	def test_offer_is_pushed_to_connected_nearby_driver(self, mock_send):
		self.registry.connect(self.driver.id, "driver", "chan-driver-one")

		notified = self._offer()

		self.assertEqual(notified, 1)
		handle, event, payload = mock_send.call_args[0]
		self.assertEqual(handle, "chan-driver-one")
		self.assertEqual(event, "ride-request")
		self.assertEqual(payload["ride"]["id"], self.ride.id)
		self.assertEqual(payload["ride"]["fare"], 155.0)
		self.assertEqual(payload["ride"]["distance_km"], 5.0)
		self.assertEqual(payload["ride"]["duration_min"], 10)
		self.assertEqual(payload["ride"]["pickup_address"], "Connaught Place")
		self.assertNotIn("otp", payload["ride"])

	def test_rider_snippet_uses_defaults_when_values_are_missing(self, mock_send):
		self.registry.connect(self.driver.id, "driver", "chan-driver-one")

		self._offer()

		rider = mock_send.call_args[0][2]["rider"]
		self.assertEqual(rider["name"], "Asha")
		self.assertEqual(rider["rating"], 4.5)
		self.assertEqual(rider["photo"], "https://randomuser.me/api/portraits/lego/1.jpg")

	def test_offline_driver_is_skipped_without_error(self, mock_send):
		self.assertEqual(self._offer(), 0)
		mock_send.assert_not_called()

	def test_zero_eligible_drivers_leaves_ride_pending(self, mock_send):
		DriverProfile.objects.update(status=DriverProfile.STATUS_INACTIVE)

		self.assertEqual(self._offer(), 0)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, Ride.STATUS_PENDING)
		mock_send.assert_not_called()

	def test_route_failure_still_dispatches_without_estimate(self, mock_send):
		self.registry.connect(self.driver.id, "driver", "chan-driver-one")
		self.maps.get_distance_time.side_effect = ProviderUnavailable("down")

		self.assertEqual(self._offer(), 1)
		payload = mock_send.call_args[0][2]
		self.assertIsNone(payload["ride"]["distance_km"])

	def test_geocoding_failure_falls_back_to_configured_point(self, mock_send):
		fallback_driver, _ = make_driver("fallback", "DL-2002", FALLBACK)
		self.registry.connect(self.driver.id, "driver", "chan-driver-one")
		self.registry.connect(fallback_driver.id, "driver", "chan-fallback")
		ride = Ride.objects.create(
			passenger=self.rider,
			pickup_address="Somewhere unmapped",
			dropoff_address="India Gate",
			otp="1111",
		)
		self.maps.get_coordinates.side_effect = RouteNotFound("no such place")

		notified = self._offer(ride)

		# Center is ~14 km from the fallback point, so only the fallback driver is in range
		self.assertEqual(notified, 1)
		handle, _, payload = mock_send.call_args[0]
		self.assertEqual(handle, "chan-fallback")
		self.assertEqual(payload["ride"]["pickup_coordinates"], {"latitude": 28.7041, "longitude": 77.1025})

	def test_accepted_ride_is_not_offered(self, mock_send):
		self.registry.connect(self.driver.id, "driver", "chan-driver-one")
		Ride.objects.filter(pk=self.ride.pk).update(status=Ride.STATUS_ACCEPTED, driver=self.driver)

		self.assertEqual(self._offer(), 0)
		mock_send.assert_not_called()

	def test_missing_ride_is_ignored(self, mock_send):
		self.assertEqual(offer_ride(999999, "A", "B", registry=self.registry, maps_service=self.maps), 0)


class DispatcherTests(SimpleTestCase):

	def test_inline_jobs_run_immediately(self):
		job = MagicMock()

		with self.settings(DISPATCH_RUN_INLINE=True):
			self.assertIsNone(dispatcher.submit(job, 1, flag=True))

		job.assert_called_once_with(1, flag=True)

	def test_job_failures_are_logged_not_raised(self):
		job = MagicMock(side_effect=RuntimeError("boom"))

		with self.settings(DISPATCH_RUN_INLINE=True):
			with self.assertLogs("services.matching.dispatcher", level="ERROR"):
				dispatcher.submit(job)

	def test_pooled_jobs_run_on_the_executor(self):
		job = MagicMock()

		with self.settings(DISPATCH_RUN_INLINE=False):
			future = dispatcher.submit(job, "ride")
			future.result(timeout=5)

		job.assert_called_once_with("ride")

	@patch("services.matching.dispatcher.submit")
	def test_submit_ride_dispatch_queues_offer_ride(self, mock_submit):
		from services.matching.offer_dispatch import offer_ride as offer

		dispatcher.submit_ride_dispatch(7, "A", "B", vehicle_type="auto", payment_method="cash")

		mock_submit.assert_called_once_with(offer, 7, "A", "B", vehicle_type="auto", payment_method="cash")
