from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers.models import DriverProfile
from services.maps import GoogleMapsService, RouteEstimate, RouteNotFound
from .models import Ride
from . import views


class RideApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.passenger = User.objects.create_user(
			username='passenger',
			password='pass1234',
			role='user',
			phone_number='9000000000'
		)
		self.driver_one = User.objects.create_user(
			username='driver_one',
			password='driver1234',
			role='driver',
			phone_number='9000000001'
		)
		self.driver_two = User.objects.create_user(
			username='driver_two',
			password='driver1234',
			role='driver',
			phone_number='9000000002'
		)

		self.profile_one = DriverProfile.objects.create(
			user=self.driver_one,
			vehicle_number='DL-1001',
			current_latitude=28.6139,
			current_longitude=77.2090
		)
		DriverProfile.objects.create(
			user=self.driver_two,
			vehicle_number='DL-1002',
			current_latitude=28.6140,
			current_longitude=77.2095
		)

		self.ride = Ride.objects.create(
			passenger=self.passenger,
			pickup_address='Connaught Place',
			dropoff_address='India Gate',
			pickup_latitude=28.6139,
			pickup_longitude=77.2090,
			vehicle_type='car',
			fare=Decimal('155.00'),
			otp='4821'
		)

		self.maps = MagicMock(spec=GoogleMapsService)
		self.maps.get_distance_time.return_value = RouteEstimate(5.0, 10, '5.0 km', '10 mins')

	def _post(self, view, path, user, data=None, **kwargs):
		request = self.factory.post(path, data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def test_rider_creates_ride_and_sees_passcode(self):
		response = self._post(views.create_ride, '/create/', self.passenger, {
			'pickup': 'Connaught Place',
			'dropoff': 'India Gate',
			'vehicle_type': 'car',
			'fare': '120.00',
		})

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['status'], 'pending')
		self.assertEqual(response.data['fare'], '120.00')
		self.assertEqual(len(response.data['otp']), 4)

	@patch('services.ride_management.ride_lifecycle.get_maps_service')
	def test_create_without_fare_quotes_it(self, mock_maps):
		mock_maps.return_value = self.maps

		response = self._post(views.create_ride, '/create/', self.passenger, {
			'pickup': 'A',
			'dropoff': 'B',
			'vehicle_type': 'car',
		})

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['fare'], '155.00')

	def test_create_validates_body(self):
		response = self._post(views.create_ride, '/create/', self.passenger, {
			'pickup': 'A',
			'vehicle_type': 'car',
		})

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['code'], 'validation_error')
		self.assertIn('dropoff', response.data['details'])

	def test_overlong_vehicle_type_is_rejected(self):
		response = self._post(views.create_ride, '/create/', self.passenger, {
			'pickup': 'A',
			'dropoff': 'B',
			'vehicle_type': 'v' * 21,
			'fare': '50.00',
		})

		self.assertEqual(response.status_code, 400)
		self.assertIn('vehicle_type', response.data['details'])
		self.assertFalse(Ride.objects.exists())

	def test_drivers_cannot_create_rides(self):
		response = self._post(views.create_ride, '/create/', self.driver_one, {
			'pickup': 'A', 'dropoff': 'B', 'vehicle_type': 'car',
		})

		self.assertEqual(response.status_code, 403)

	@patch('services.ride_management.ride_lifecycle.get_maps_service')
	def test_fare_preview(self, mock_maps):
		mock_maps.return_value = self.maps
		request = self.factory.get('/fare/', {'pickup': 'A', 'dropoff': 'B', 'vehicle_type': 'auto'})
		force_authenticate(request, user=self.passenger)

		response = views.fare_quote(request)

		# 25 + 5 * 12 + 10 * 2
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['fare'], 105.0)
		self.assertEqual(response.data['distance_text'], '5.0 km')

	@patch('services.ride_management.ride_lifecycle.get_maps_service')
	def test_fare_preview_maps_provider_errors(self, mock_maps):
		mock_maps.return_value = self.maps
		self.maps.get_distance_time.side_effect = RouteNotFound('no route')
		request = self.factory.get('/fare/', {'pickup': 'A', 'dropoff': 'B'})
		force_authenticate(request, user=self.passenger)

		response = views.fare_quote(request)

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['code'], 'route_not_found')

	def test_accept_ride_assigns_driver(self):
		response = self._post(views.accept_ride, '/%d/accept/' % self.ride.id, self.driver_one, ride_id=self.ride.id)

		self.assertEqual(response.status_code, 200)
		self.assertNotIn('otp', response.data['ride'])

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'accepted')
		self.assertEqual(self.ride.driver, self.driver_one)

	def test_second_accept_returns_conflict(self):
		self._post(views.accept_ride, '/%d/accept/' % self.ride.id, self.driver_one, ride_id=self.ride.id)
		response = self._post(views.accept_ride, '/%d/accept/' % self.ride.id, self.driver_two, ride_id=self.ride.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'conflict')
		self.assertEqual(response.data['current_status'], 'accepted')

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.driver, self.driver_one)

	def test_accept_unknown_ride_returns_not_found(self):
		response = self._post(views.accept_ride, '/999/accept/', self.driver_one, ride_id=999)

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['code'], 'ride_not_found')

	def test_riders_cannot_accept(self):
		response = self._post(views.accept_ride, '/accept/', self.passenger, ride_id=self.ride.id)

		self.assertEqual(response.status_code, 403)

	def test_full_trip(self):
		path = '/%d/' % self.ride.id
		self._post(views.accept_ride, path, self.driver_one, ride_id=self.ride.id)

		wrong = self._post(views.start_ride, path, self.driver_one, {'otp': '0000'}, ride_id=self.ride.id)
		self.assertEqual(wrong.status_code, 400)
		self.assertEqual(wrong.data['code'], 'invalid_otp')

		other = self._post(views.start_ride, path, self.driver_two, {'otp': '4821'}, ride_id=self.ride.id)
		self.assertEqual(other.status_code, 403)

		started = self._post(views.start_ride, path, self.driver_one, {'otp': '4821'}, ride_id=self.ride.id)
		self.assertEqual(started.status_code, 200)
		self.assertEqual(started.data['ride']['status'], 'in-progress')

		completed = self._post(
			views.complete_ride, path, self.driver_one,
			{'distance': '5.20', 'duration': 17}, ride_id=self.ride.id
		)
		self.assertEqual(completed.status_code, 200)
		self.assertEqual(completed.data['ride']['status'], 'completed')
		self.assertEqual(completed.data['driver_totals']['total_rides'], 1)

		self.profile_one.refresh_from_db()
		self.assertEqual(self.profile_one.total_earnings, Decimal('155.00'))
		self.assertEqual(self.profile_one.total_distance, Decimal('5.20'))

	def test_rider_cancels_pending_ride(self):
		response = self._post(
			views.cancel_ride, '/cancel/', self.passenger, {'reason': 'Changed plans'}, ride_id=self.ride.id
		)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], 'cancelled')

	def test_cancel_after_start_returns_conflict(self):
		Ride.objects.filter(pk=self.ride.pk).update(status='in-progress', driver=self.driver_one)

		response = self._post(views.cancel_ride, '/cancel/', self.passenger, ride_id=self.ride.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['current_status'], 'in-progress')
