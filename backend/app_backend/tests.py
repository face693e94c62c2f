from unittest.mock import patch

import redis
from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory

from .views import health_check


class HealthCheckTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	def test_healthy_without_redis_broker(self):
		response = health_check(self.factory.get('/api/health/'))

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['ok'])
		self.assertEqual(response.data['services']['database'], 'healthy')
		self.assertEqual(response.data['services']['broker'], 'not used')

	@override_settings(CELERY_BROKER_URL='redis://localhost:6379/0')
	@patch('app_backend.views.redis.Redis.from_url')
	def test_unreachable_broker_reports_unavailable(self, mock_from_url):
		mock_from_url.return_value.ping.side_effect = redis.ConnectionError('refused')

		response = health_check(self.factory.get('/api/health/'))

		self.assertEqual(response.status_code, 503)
		self.assertFalse(response.data['ok'])
		self.assertEqual(response.data['code'], 'TRANSIENT_INFRASTRUCTURE')
		self.assertTrue(response.data['services']['broker'].startswith('unhealthy'))
		self.assertEqual(response.data['services']['database'], 'healthy')
