from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import Role, User
from rides.models import Ride
from services.messaging import ConversationParty, mark_read, unread_count, unread_counts_for
from .models import Conversation, Message
from .views import conversation_messages, mark_read as mark_read_view, unread_counts


class ConversationReadTrackerTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver = User.objects.create_user(username='driver', password='pass1234', role=Role.DRIVER)
		self.rider = User.objects.create_user(username='rider', password='pass1234', role=Role.RIDER)
		self.stranger = User.objects.create_user(username='stranger', password='pass1234', role=Role.RIDER)

		ride = Ride.objects.create(
			driver=self.driver,
			origin_address='A',
			origin_lat=40.0,
			origin_lng=-75.0,
			destination_address='B',
			destination_lat=40.1,
			destination_lng=-75.1,
			distance_miles=8,
			departure_time=timezone.now() + timedelta(hours=3),
		)
		self.conversation = Conversation.objects.create(ride=ride, driver=self.driver, rider=self.rider)

	def send(self, sender, body):
		return Message.objects.create(conversation=self.conversation, sender=sender, body=body)

	def test_counts_only_other_party_messages(self):
		self.send(self.driver, 'On my way')
		self.send(self.driver, 'Outside')
		self.send(self.rider, 'Coming down')

		self.assertEqual(unread_count(self.conversation, ConversationParty.RIDER), 2)
		self.assertEqual(unread_count(self.conversation, ConversationParty.DRIVER), 1)

	def test_mark_read_resets_and_later_messages_count(self):
		self.send(self.driver, 'On my way')
		mark_read(self.conversation, ConversationParty.RIDER, now=timezone.now() + timedelta(seconds=1))
		self.assertEqual(unread_count(self.conversation, ConversationParty.RIDER), 0)

		later = self.send(self.driver, 'Outside')
		Message.objects.filter(pk=later.pk).update(created_at=timezone.now() + timedelta(seconds=5))
		self.assertEqual(unread_count(self.conversation, ConversationParty.RIDER), 1)

	def test_watermark_never_moves_backwards(self):
		now = timezone.now()
		mark_read(self.conversation, ConversationParty.DRIVER, now=now)
		result = mark_read(self.conversation, ConversationParty.DRIVER, now=now - timedelta(minutes=5))
		self.assertEqual(result, now)

	def test_unread_counts_for_foreign_conversation_is_zero(self):
		self.send(self.driver, 'Hello')
		counts = unread_counts_for(self.stranger.pk, [self.conversation.id, 424242])
		self.assertEqual(counts, {self.conversation.id: 0, 424242: 0})

	def test_messages_endpoint_round_trip(self):
		request = self.factory.post('/', {'body': 'Running 5 minutes late'}, format='json')
		force_authenticate(request, user=self.driver)
		response = conversation_messages(request, conversation_id=self.conversation.id)
		self.assertEqual(response.status_code, 201)

		request = self.factory.get('/')
		force_authenticate(request, user=self.rider)
		response = conversation_messages(request, conversation_id=self.conversation.id)
		self.assertEqual([m['body'] for m in response.data['messages']], ['Running 5 minutes late'])

	def test_empty_message_rejected(self):
		request = self.factory.post('/', {'body': '   '}, format='json')
		force_authenticate(request, user=self.rider)
		response = conversation_messages(request, conversation_id=self.conversation.id)
		self.assertEqual(response.status_code, 400)

	def test_stranger_is_forbidden(self):
		request = self.factory.get('/')
		force_authenticate(request, user=self.stranger)
		response = conversation_messages(request, conversation_id=self.conversation.id)
		self.assertEqual(response.status_code, 403)

	def test_mark_read_and_unread_counts_endpoints(self):
		self.send(self.driver, 'Outside')

		request = self.factory.get('/', {'ids': str(self.conversation.id)})
		force_authenticate(request, user=self.rider)
		response = unread_counts(request)
		self.assertEqual(response.data['counts'], {str(self.conversation.id): 1})

		request = self.factory.post('/')
		force_authenticate(request, user=self.rider)
		response = mark_read_view(request, conversation_id=self.conversation.id)
		self.assertEqual(response.status_code, 200)

		request = self.factory.post('/', {'conversationIds': [self.conversation.id]}, format='json')
		force_authenticate(request, user=self.rider)
		response = unread_counts(request)
		self.assertEqual(response.data['counts'], {str(self.conversation.id): 0})
