from unittest.mock import MagicMock, patch

import requests
from django.test import SimpleTestCase

from services.maps import (
	Coordinates,
	GoogleMapsService,
	ProviderError,
	ProviderUnavailable,
	RouteNotFound,
	normalize_location,
)


def _response(data):
	response = MagicMock()
	response.json.return_value = data
	response.raise_for_status.return_value = None
	return response


def _distance_matrix(meters=12345, seconds=1530, element_status="OK", status="OK"):
	element = {"status": element_status}
	if element_status == "OK":
		element.update({
			"distance": {"value": meters, "text": "12.3 km"},
			"duration": {"value": seconds, "text": "26 mins"},
		})
	return {"status": status, "rows": [{"elements": [element]}]}


@patch("services.maps.google.requests.get")
class DistanceTimeTests(SimpleTestCase):

	def setUp(self):
		self.service = GoogleMapsService(api_key="secret", timeout=5, region="in")

	def test_normalizes_distance_and_duration(self, mock_get):
		mock_get.return_value = _response(_distance_matrix())

		estimate = self.service.get_distance_time("Connaught Place", "India Gate")

		self.assertEqual(estimate.distance_km, 12.35)
		self.assertEqual(estimate.duration_min, 26)
		self.assertEqual(estimate.distance_text, "12.3 km")
		self.assertEqual(estimate.duration_text, "26 mins")

		_, kwargs = mock_get.call_args
		self.assertEqual(kwargs["timeout"], 5)
		self.assertEqual(kwargs["params"]["origins"], "Connaught Place")
		self.assertEqual(kwargs["params"]["destinations"], "India Gate")
		self.assertEqual(kwargs["params"]["key"], "secret")

	def test_accepts_coordinate_pairs(self, mock_get):
		mock_get.return_value = _response(_distance_matrix())

		self.service.get_distance_time((28.6139, 77.209), Coordinates(28.5, 77.1))

		params = mock_get.call_args[1]["params"]
		self.assertEqual(params["origins"], "28.6139,77.209")
		self.assertEqual(params["destinations"], "28.5,77.1")

	def test_no_route_raises_route_not_found(self, mock_get):
		mock_get.return_value = _response(_distance_matrix(element_status="ZERO_RESULTS"))

		with self.assertRaises(RouteNotFound):
			self.service.get_distance_time("A", "B")

	def test_denied_request_raises_provider_unavailable(self, mock_get):
		mock_get.return_value = _response({"status": "REQUEST_DENIED", "error_message": "bad key"})

		with self.assertRaises(ProviderUnavailable):
			self.service.get_distance_time("A", "B")

	def test_other_statuses_raise_provider_error(self, mock_get):
		mock_get.return_value = _response({"status": "UNKNOWN_ERROR"})

		with self.assertRaises(ProviderError):
			self.service.get_distance_time("A", "B")

	def test_timeout_raises_provider_unavailable(self, mock_get):
		mock_get.side_effect = requests.Timeout("too slow")

		with self.assertRaises(ProviderUnavailable):
			self.service.get_distance_time("A", "B")

	def test_http_error_raises_provider_error(self, mock_get):
		response = _response({})
		response.raise_for_status.side_effect = requests.HTTPError("500")
		mock_get.return_value = response

		with self.assertRaises(ProviderError):
			self.service.get_distance_time("A", "B")

	def test_malformed_json_raises_provider_error(self, mock_get):
		response = _response({})
		response.json.side_effect = ValueError("not json")
		mock_get.return_value = response

		with self.assertRaises(ProviderError):
			self.service.get_distance_time("A", "B")

	def test_missing_api_key_fails_without_calling_provider(self, mock_get):
		service = GoogleMapsService(api_key="", timeout=5)

		with self.assertRaises(ProviderUnavailable):
			service.get_distance_time("A", "B")
		mock_get.assert_not_called()


@patch("services.maps.google.requests.get")
class GeocodingTests(SimpleTestCase):

	def setUp(self):
		self.service = GoogleMapsService(api_key="secret", timeout=5, region="in")

	def test_returns_first_result_coordinates(self, mock_get):
		mock_get.return_value = _response({
			"status": "OK",
			"results": [{"geometry": {"location": {"lat": 28.6315, "lng": 77.2167}}}],
		})

		coordinates = self.service.get_coordinates("Connaught Place")

		self.assertEqual(coordinates, Coordinates(28.6315, 77.2167))
		params = mock_get.call_args[1]["params"]
		self.assertEqual(params["address"], "Connaught Place")
		self.assertEqual(params["region"], "in")

	def test_unknown_address_raises_route_not_found(self, mock_get):
		mock_get.return_value = _response({"status": "ZERO_RESULTS", "results": []})

		with self.assertRaises(RouteNotFound):
			self.service.get_coordinates("nowhere at all")

	def test_suggestions_are_capped_at_five(self, mock_get):
		mock_get.return_value = _response({
			"status": "OK",
			"results": [
				{"name": f"Place {i}", "formatted_address": f"Street {i}, Delhi", "place_id": f"p{i}"}
				for i in range(7)
			],
		})

		suggestions = self.service.get_suggestions("Pla")

		self.assertEqual(len(suggestions), 5)
		self.assertEqual(suggestions[0], {
			"description": "Place 0, Street 0, Delhi",
			"place_id": "p0",
			"main_text": "Place 0",
			"secondary_text": "Street 0, Delhi",
		})

	def test_no_suggestions_is_an_empty_list(self, mock_get):
		mock_get.return_value = _response({"status": "ZERO_RESULTS", "results": []})

		self.assertEqual(self.service.get_suggestions("zzzz"), [])


class NormalizeLocationTests(SimpleTestCase):

	def test_dict_locations(self):
		self.assertEqual(normalize_location({"lat": 1.5, "lng": 2.5}), "1.5,2.5")
		self.assertEqual(normalize_location({"latitude": 1, "longitude": 2}), "1.0,2.0")

	def test_blank_location_is_rejected(self):
		with self.assertRaises(ValueError):
			normalize_location("   ")
