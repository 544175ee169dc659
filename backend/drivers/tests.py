from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers.models import DriverProfile
from drivers.views import DriverProfileView, DriverStatusView, DriverLocationUpdateView
from rides.models import Ride


class DriverApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver = User.objects.create_user(username='driver_one', password='driver1234', role='driver')
		self.profile = DriverProfile.objects.create(
			user=self.driver,
			vehicle_number='DL-1001',
			total_rides=3,
			total_earnings=Decimal('450.00')
		)
		self.rider = User.objects.create_user(username='rider', password='pass1234', role='user')

	def _call(self, view, method, user, data=None):
		request = getattr(self.factory, method)('/api/driver/', data or {}, format='json')
		force_authenticate(request, user=user)
		return view.as_view()(request)

	def test_profile_includes_counters(self):
		response = self._call(DriverProfileView, 'get', self.driver)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['total_rides'], 3)
		self.assertEqual(response.data['total_earnings'], '450.00')
		self.assertEqual(response.data['user']['username'], 'driver_one')

	def test_riders_are_refused(self):
		response = self._call(DriverProfileView, 'get', self.rider)

		self.assertEqual(response.status_code, 403)

	def test_driver_goes_inactive(self):
		response = self._call(DriverStatusView, 'put', self.driver, {'status': 'inactive'})

		self.assertEqual(response.status_code, 200)
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, DriverProfile.STATUS_INACTIVE)

	def test_driver_cannot_set_banned(self):
		response = self._call(DriverStatusView, 'put', self.driver, {'status': 'banned'})

		self.assertEqual(response.status_code, 400)

	def test_banned_driver_cannot_reactivate(self):
		DriverProfile.objects.filter(pk=self.profile.pk).update(status=DriverProfile.STATUS_BANNED)

		response = self._call(DriverStatusView, 'put', self.driver, {'status': 'active'})

		self.assertEqual(response.status_code, 403)
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, DriverProfile.STATUS_BANNED)

	def test_location_update(self):
		response = self._call(DriverLocationUpdateView, 'post', self.driver, {
			'latitude': '28.613900',
			'longitude': '77.209000',
		})

		self.assertEqual(response.status_code, 200)
		self.profile.refresh_from_db()
		self.assertTrue(self.profile.has_location)
		self.assertIsNotNone(self.profile.last_location_update)

		response = self._call(DriverLocationUpdateView, 'get', self.driver)
		self.assertEqual(response.data['latitude'], 28.6139)

	@patch('realtime.notifications.notify_rider', return_value=True)
	def test_location_is_relayed_to_the_rider_of_an_accepted_ride(self, mock_notify):
		ride = Ride.objects.create(
			passenger=self.rider, driver=self.driver, pickup_address='A', dropoff_address='B',
			status=Ride.STATUS_ACCEPTED, otp='4821',
		)

		response = self._call(DriverLocationUpdateView, 'post', self.driver, {
			'latitude': '28.613900',
			'longitude': '77.209000',
		})

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['relayed_to_rider'])
		event, relayed_ride, payload = mock_notify.call_args[0]
		self.assertEqual(event, 'driver-location')
		self.assertEqual(relayed_ride.pk, ride.pk)
		self.assertEqual(payload['latitude'], 28.6139)

	@patch('realtime.notifications.notify_rider')
	def test_location_without_a_current_trip_is_not_relayed(self, mock_notify):
		response = self._call(DriverLocationUpdateView, 'post', self.driver, {
			'latitude': '28.6139',
			'longitude': '77.209',
		})

		self.assertFalse(response.data['relayed_to_rider'])
		mock_notify.assert_not_called()

	def test_location_out_of_range_is_rejected(self):
		response = self._call(DriverLocationUpdateView, 'post', self.driver, {
			'latitude': '128.0',
			'longitude': '77.2',
		})

		self.assertEqual(response.status_code, 400)
