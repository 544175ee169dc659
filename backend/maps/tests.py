from unittest.mock import MagicMock, patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from services.maps import Coordinates, GoogleMapsService, ProviderUnavailable, RouteEstimate
from . import views


@patch('maps.views.get_maps_service')
class MapsApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.user = User.objects.create_user(username='rider', password='pass1234', role='user')
		self.maps = MagicMock(spec=GoogleMapsService)

	def _get(self, view, params):
		request = self.factory.get('/api/maps/', params)
		force_authenticate(request, user=self.user)
		return view(request)

	def test_coordinates(self, mock_service):
		mock_service.return_value = self.maps
		self.maps.get_coordinates.return_value = Coordinates(28.6315, 77.2167)

		response = self._get(views.get_coordinates, {'address': 'Connaught Place'})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data, {'latitude': 28.6315, 'longitude': 77.2167})

	def test_distance_time(self, mock_service):
		mock_service.return_value = self.maps
		self.maps.get_distance_time.return_value = RouteEstimate(12.35, 26, '12.3 km', '26 mins')

		response = self._get(views.get_distance_time, {'origin': 'Connaught Place', 'destination': 'India Gate'})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['distance_km'], 12.35)
		self.assertEqual(response.data['duration_min'], 26)

	def test_suggestions(self, mock_service):
		mock_service.return_value = self.maps
		self.maps.get_suggestions.return_value = [{'description': 'India Gate, Delhi', 'place_id': 'p1'}]

		response = self._get(views.get_suggestions, {'input': 'Indi'})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)

	def test_short_input_is_rejected(self, mock_service):
		response = self._get(views.get_suggestions, {'input': 'a'})

		self.assertEqual(response.status_code, 400)
		mock_service.assert_not_called()

	def test_provider_unavailable_maps_to_503(self, mock_service):
		mock_service.return_value = self.maps
		self.maps.get_coordinates.side_effect = ProviderUnavailable('Google Maps API key is not configured')

		response = self._get(views.get_coordinates, {'address': 'Connaught Place'})

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['code'], 'provider_unavailable')
