from unittest.mock import patch

import redis
from django.test import TestCase
from rest_framework.test import APIRequestFactory

from dispatch_backend.views import health_check


class HealthCheckTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	@patch('dispatch_backend.views.redis.Redis.from_url')
	def test_healthy(self, mock_redis):
		mock_redis.return_value.ping.return_value = True

		response = health_check(self.factory.get('/health/'))

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['services'], {
			'database': 'healthy',
			'redis': 'healthy',
			'channels': 'healthy',
		})

	@patch('dispatch_backend.views.redis.Redis.from_url')
	def test_redis_down_is_unhealthy(self, mock_redis):
		mock_redis.return_value.ping.side_effect = redis.ConnectionError('refused')

		response = health_check(self.factory.get('/health/'))

		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.data['services']['redis'].startswith('unhealthy'))
