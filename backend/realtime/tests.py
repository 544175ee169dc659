from unittest.mock import AsyncMock, MagicMock, patch

from asgiref.sync import sync_to_async
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.test import SimpleTestCase, TestCase
from rest_framework_simplejwt.tokens import AccessToken

from accounts.models import User
from drivers.models import DriverProfile
from rides.models import Ride
from realtime import notifications
from realtime.consumers import AppConsumer
from realtime.middleware import get_user_for_token
from realtime.registry import ConnectionRegistry, get_connection_registry, send_to_connection


class ConnectionRegistryTests(SimpleTestCase):
	def setUp(self):
		self.registry = ConnectionRegistry()

	def test_newest_connection_wins(self):
		self.registry.connect(1, 'driver', 'h1')
		self.registry.connect(1, 'driver', 'h2')

		# Stale disconnect leaves the newer connection in place
		self.assertIsNone(self.registry.disconnect('h1'))
		self.assertEqual(self.registry.get(1), 'h2')

		self.assertEqual(self.registry.disconnect('h2'), 1)
		self.assertIsNone(self.registry.get(1))
		self.assertFalse(self.registry.is_online(1))

	def test_accounts_are_independent(self):
		self.registry.connect(1, 'user', 'rider-chan')
		self.registry.connect(2, 'driver', 'driver-chan')

		self.registry.disconnect('rider-chan')

		self.assertEqual(self.registry.get(2), 'driver-chan')
		self.assertEqual(len(self.registry), 1)

	def test_reused_handle_moves_to_new_account(self):
		self.registry.connect(1, 'user', 'shared')
		self.registry.connect(2, 'user', 'shared')

		self.assertIsNone(self.registry.get(1))
		self.assertEqual(self.registry.get(2), 'shared')

	def test_unknown_handle_and_offline_lookups(self):
		self.assertIsNone(self.registry.disconnect('nope'))
		self.assertIsNone(self.registry.get(None))
		self.assertIsNone(self.registry.get(99))

	def test_process_registry_is_a_singleton(self):
		self.assertIs(get_connection_registry(), get_connection_registry())


class PushTests(SimpleTestCase):
	def test_send_failure_is_reported_not_raised(self):
		layer = MagicMock()
		layer.send = AsyncMock(side_effect=RuntimeError('connection closed'))

		with patch('realtime.registry.get_channel_layer', return_value=layer):
			with self.assertLogs('realtime.registry', level='ERROR'):
				self.assertFalse(send_to_connection('h1', 'ride-accepted', {}))

	def test_send_wraps_event_for_the_consumer(self):
		layer = MagicMock()
		layer.send = AsyncMock()

		with patch('realtime.registry.get_channel_layer', return_value=layer):
			self.assertTrue(send_to_connection('h1', 'ride-completed', {'ride_id': 3}))

		layer.send.assert_awaited_once_with('h1', {
			'type': 'push.event',
			'event': 'ride-completed',
			'payload': {'ride_id': 3},
		})

	def test_no_handle_sends_nothing(self):
		self.assertFalse(send_to_connection(None, 'ride-request', {}))

	@patch('realtime.notifications.send_to_connection')
	def test_notify_rider_is_a_noop_when_offline(self, mock_send):
		ride = Ride(passenger_id=5)

		self.assertFalse(notifications.notify_rider('ride-accepted', ride, {}, registry=ConnectionRegistry()))
		mock_send.assert_not_called()

	@patch('realtime.notifications.send_to_connection', return_value=True)
	def test_notify_rider_uses_the_riders_connection(self, mock_send):
		registry = ConnectionRegistry()
		registry.connect(5, 'user', 'rider-chan')

		self.assertTrue(notifications.notify_rider('ride-accepted', Ride(passenger_id=5), {'x': 1}, registry=registry))
		mock_send.assert_called_once_with('rider-chan', 'ride-accepted', {'x': 1})


class AppConsumerTests(TestCase):
	def setUp(self):
		get_connection_registry().clear()
		self.rider = User.objects.create_user(username='rider', password='pass1234', role='user')
		self.driver = User.objects.create_user(username='driver_one', password='driver1234', role='driver')
		DriverProfile.objects.create(user=self.driver, vehicle_number='DL-1001')

	def tearDown(self):
		get_connection_registry().clear()

	async def _connect(self, user):
		communicator = WebsocketCommunicator(AppConsumer.as_asgi(), '/ws/app/')
		communicator.scope['user'] = user
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		return communicator

	async def test_anonymous_socket_is_refused(self):
		communicator = WebsocketCommunicator(AppConsumer.as_asgi(), '/ws/app/')
		communicator.scope['user'] = AnonymousUser()

		connected, _ = await communicator.connect()

		self.assertFalse(connected)

	async def test_join_registers_and_disconnect_unregisters(self):
		communicator = await self._connect(self.rider)

		await communicator.send_json_to({'type': 'join', 'userId': self.rider.id, 'role': 'user'})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply, {'type': 'joined', 'userId': self.rider.id, 'role': 'user'})
		self.assertTrue(get_connection_registry().is_online(self.rider.id))

		await communicator.disconnect()
		self.assertFalse(get_connection_registry().is_online(self.rider.id))

	async def test_join_as_someone_else_is_rejected(self):
		communicator = await self._connect(self.rider)

		await communicator.send_json_to({'type': 'join', 'userId': self.driver.id, 'role': 'driver'})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply['type'], 'error')
		self.assertFalse(get_connection_registry().is_online(self.driver.id))
		await communicator.disconnect()

	async def test_pushed_event_reaches_the_client(self):
		communicator = await self._connect(self.rider)
		await communicator.send_json_to({'type': 'join', 'userId': str(self.rider.id), 'role': 'user'})
		await communicator.receive_json_from()

		delivered = await sync_to_async(notifications.notify_account)(
			self.rider.id, notifications.RIDE_ACCEPTED, {'ride_id': 7, 'otp': '4821'}
		)
		message = await communicator.receive_json_from()

		self.assertTrue(delivered)
		self.assertEqual(message, {'event': 'ride-accepted', 'data': {'ride_id': 7, 'otp': '4821'}})
		await communicator.disconnect()

	async def test_newer_socket_survives_old_socket_closing(self):
		first = await self._connect(self.driver)
		await first.send_json_to({'type': 'join', 'userId': self.driver.id, 'role': 'driver'})
		await first.receive_json_from()

		second = await self._connect(self.driver)
		await second.send_json_to({'type': 'join', 'userId': self.driver.id, 'role': 'driver'})
		await second.receive_json_from()

		await first.disconnect()

		self.assertTrue(get_connection_registry().is_online(self.driver.id))
		await second.disconnect()
		self.assertFalse(get_connection_registry().is_online(self.driver.id))

	async def test_driver_location_update(self):
		communicator = await self._connect(self.driver)

		await communicator.send_json_to({'type': 'update-location', 'latitude': 28.6139, 'longitude': 77.209})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply['type'], 'location-updated')
		profile = await DriverProfile.objects.aget(user=self.driver)
		self.assertTrue(profile.has_location)
		await communicator.disconnect()

	async def test_driver_location_is_relayed_to_the_rider_of_the_current_trip(self):
		await Ride.objects.acreate(
			passenger=self.rider, driver=self.driver, pickup_address='A', dropoff_address='B',
			status=Ride.STATUS_IN_PROGRESS, otp='4821',
		)
		rider = await self._connect(self.rider)
		await rider.send_json_to({'type': 'join', 'userId': self.rider.id, 'role': 'user'})
		await rider.receive_json_from()
		driver = await self._connect(self.driver)

		await driver.send_json_to({'type': 'update-location', 'latitude': 28.6139, 'longitude': 77.209})
		reply = await driver.receive_json_from()
		message = await rider.receive_json_from()

		self.assertEqual(reply['type'], 'location-updated')
		self.assertTrue(reply['relayed'])
		self.assertEqual(message['event'], 'driver-location')
		self.assertEqual(message['data']['driver_id'], self.driver.id)
		self.assertEqual(message['data']['latitude'], 28.6139)
		await driver.disconnect()
		await rider.disconnect()

	async def test_location_is_not_relayed_without_a_current_trip(self):
		await Ride.objects.acreate(
			passenger=self.rider, driver=self.driver, pickup_address='A', dropoff_address='B',
			status=Ride.STATUS_COMPLETED, otp='4821',
		)
		rider = await self._connect(self.rider)
		await rider.send_json_to({'type': 'join', 'userId': self.rider.id, 'role': 'user'})
		await rider.receive_json_from()
		driver = await self._connect(self.driver)

		await driver.send_json_to({'type': 'update-location', 'latitude': 1, 'longitude': 2})
		reply = await driver.receive_json_from()

		self.assertFalse(reply['relayed'])
		self.assertTrue(await rider.receive_nothing())
		await driver.disconnect()
		await rider.disconnect()

	async def test_riders_cannot_report_location(self):
		communicator = await self._connect(self.rider)

		await communicator.send_json_to({'type': 'update-location', 'latitude': 1, 'longitude': 2})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply['type'], 'error')
		await communicator.disconnect()

	async def test_unknown_message_type(self):
		communicator = await self._connect(self.rider)

		await communicator.send_json_to({'type': 'dance'})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply, {'type': 'error', 'message': 'Unknown message type: dance'})
		await communicator.disconnect()


class JWTMiddlewareTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='rider', password='pass1234', role='user')

	async def test_valid_token_resolves_user(self):
		token = str(AccessToken.for_user(self.user))

		user = await get_user_for_token(token)

		self.assertEqual(user.pk, self.user.pk)

	async def test_invalid_token_is_anonymous(self):
		user = await get_user_for_token('garbage')

		self.assertTrue(user.is_anonymous)
