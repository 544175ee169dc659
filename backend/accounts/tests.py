from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from accounts.views import RegisterView, LoginView, RefreshTokenView, ProfileView, LogoutView
from drivers.models import DriverProfile


class AuthApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	def _post(self, view, data):
		request = self.factory.post('/api/auth/', data, format='json')
		return view.as_view()(request)

	def test_register_driver_creates_profile(self):
		response = self._post(RegisterView, {
			'username': 'driver_one',
			'email': 'driver@example.com',
			'password': 'driver1234',
			'role': 'driver',
			'phone_number': '9000000001',
			'vehicle_number': 'DL-1001',
			'vehicle_type': 'auto',
		})

		self.assertEqual(response.status_code, 201)
		self.assertIn('access', response.data['tokens'])
		profile = DriverProfile.objects.get(user__username='driver_one')
		self.assertEqual(profile.vehicle_type, 'auto')
		self.assertEqual(profile.status, DriverProfile.STATUS_ACTIVE)

	def test_driver_registration_requires_vehicle(self):
		response = self._post(RegisterView, {
			'username': 'driver_two',
			'password': 'driver1234',
			'role': 'driver',
		})

		self.assertEqual(response.status_code, 400)
		self.assertIn('vehicle_number', response.data)

	def test_register_rider_has_no_driver_profile(self):
		response = self._post(RegisterView, {
			'username': 'rider',
			'email': 'rider@example.com',
			'password': 'pass1234',
			'role': 'user',
		})

		self.assertEqual(response.status_code, 201)
		self.assertFalse(DriverProfile.objects.exists())

	def test_login_and_refresh(self):
		User.objects.create_user(username='rider', password='pass1234', role='user')

		login = self._post(LoginView, {'username': 'rider', 'password': 'pass1234'})
		self.assertEqual(login.status_code, 200)

		refresh = self._post(RefreshTokenView, {'refresh': login.data['tokens']['refresh']})
		self.assertEqual(refresh.status_code, 200)
		self.assertIn('access', refresh.data)

	def test_bad_refresh_token(self):
		response = self._post(RefreshTokenView, {'refresh': 'not-a-token'})

		self.assertEqual(response.status_code, 401)

	def _authed(self, view, method, user, data=None):
		request = getattr(self.factory, method)('/api/auth/', data or {}, format='json')
		force_authenticate(request, user=user)
		return view.as_view()(request)

	def test_rider_profile(self):
		rider = User.objects.create_user(username='rider', password='pass1234', role='user')

		response = self._authed(ProfileView, 'get', rider)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['user']['username'], 'rider')
		self.assertNotIn('driver_profile', response.data)

	def test_driver_profile_includes_vehicle(self):
		driver = User.objects.create_user(username='driver_one', password='driver1234', role='driver')
		DriverProfile.objects.create(user=driver, vehicle_number='DL-1001')

		response = self._authed(ProfileView, 'get', driver)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['driver_profile']['vehicle_number'], 'DL-1001')

	def test_logout_revokes_refresh_token(self):
		User.objects.create_user(username='rider', password='pass1234', role='user')
		login = self._post(LoginView, {'username': 'rider', 'password': 'pass1234'})
		rider = User.objects.get(username='rider')
		refresh_token = login.data['tokens']['refresh']

		logout = self._authed(LogoutView, 'post', rider, {'refresh': refresh_token})
		self.assertEqual(logout.status_code, 200)

		refresh = self._post(RefreshTokenView, {'refresh': refresh_token})
		self.assertEqual(refresh.status_code, 401)

	def test_logout_rejects_another_accounts_token(self):
		User.objects.create_user(username='rider', password='pass1234', role='user')
		other = User.objects.create_user(username='rider_two', password='pass1234', role='user')
		login = self._post(LoginView, {'username': 'rider', 'password': 'pass1234'})

		response = self._authed(LogoutView, 'post', other, {'refresh': login.data['tokens']['refresh']})

		self.assertEqual(response.status_code, 403)

	def test_logout_requires_token(self):
		rider = User.objects.create_user(username='rider', password='pass1234', role='user')

		self.assertEqual(self._authed(LogoutView, 'post', rider).status_code, 400)
		self.assertEqual(self._authed(LogoutView, 'post', rider, {'refresh': 'garbage'}).status_code, 401)
