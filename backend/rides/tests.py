import threading
from datetime import timedelta

from django.core import mail
from django.core.management import call_command
from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate
from unittest.mock import patch

from accounts.identity import Identity
from accounts.models import Role, User
from chat.models import Conversation
from memberships.models import MembershipType
from services.exceptions import ConflictError, TransientInfrastructureError
from services.membership import grant_membership
from services.ride_management import accept_ride as accept_ride_service
from .models import Booking, BookingStatus, Ride, RideStatus
from .views import (
	accept_ride,
	cancel_booking,
	cancel_ride,
	complete_ride,
	driver_portal,
	request_ride,
	ride_receipt,
	rides,
	start_ride,
)

# 300 + 200 * 48.5 = 10000 cents
RIDE_PAYLOAD = {
	'origin': {'address': 'Union Station', 'lat': 38.8977, 'lng': -77.0063},
	'destination': {'address': 'BWI Airport', 'lat': 39.1774, 'lng': -76.6684},
	'distanceMiles': 48.5,
	'departureTime': '2030-05-01T09:30:00Z',
	'passengerCount': 2,
}


def make_member(username, role, paid=False):
	user = User.objects.create_user(
		username=username,
		password='pass1234',
		email='%s@example.com' % username,
		role=role,
	)
	membership_type = MembershipType.DRIVER if role == Role.DRIVER else MembershipType.RIDER
	grant_membership(user.pk, membership_type, 30, amount_paid_cents=1999 if paid else 0)
	return user


def make_ride(driver, distance_miles=48.5, status=RideStatus.OPEN):
	return Ride.objects.create(
		driver=driver,
		origin_address='Union Station',
		origin_lat=38.8977,
		origin_lng=-77.0063,
		destination_address='BWI Airport',
		destination_lat=39.1774,
		destination_lng=-76.6684,
		distance_miles=distance_miles,
		departure_time=timezone.now() + timedelta(days=1),
		passenger_count=1,
		status=status,
	)


class RideApiTestCase(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver = make_member('driver', Role.DRIVER)
		self.rider = make_member('rider', Role.RIDER)
		self.other_rider = make_member('other_rider', Role.RIDER)

	def call(self, view, user, path='/', data=None, method='post', **kwargs):
		request = getattr(self.factory, method)(path, data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)


class RideLifecycleFlowTests(RideApiTestCase):
	def test_post_accept_start_complete_round_trip(self):
		response = self.call(rides, self.driver, data=RIDE_PAYLOAD)
		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['ok'])
		ride_id = response.data['ride']['id']
		self.assertEqual(response.data['ride']['status'], 'OPEN')
		self.assertIsNone(response.data['ride']['total_price_cents'])

		response = self.call(accept_ride, self.rider, data={'paymentType': 'CASH', 'cashDiscountBps': 1000}, ride_id=ride_id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], 'ACCEPTED')
		self.assertEqual(response.data['booking']['final_amount_cents'], 9000)
		self.assertIsNotNone(response.data['conversation_id'])

		response = self.call(start_ride, self.driver, ride_id=ride_id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], 'IN_ROUTE')

		with self.captureOnCommitCallbacks(execute=True):
			response = self.call(complete_ride, self.driver, data={'fareCents': 8700}, ride_id=ride_id)
		self.assertEqual(response.status_code, 200)

		ride = Ride.objects.get(pk=ride_id)
		booking = ride.bookings.get()
		self.assertEqual(ride.status, RideStatus.COMPLETED)
		self.assertEqual(ride.total_price_cents, 9000)
		self.assertEqual(booking.status, BookingStatus.COMPLETED)
		self.assertGreaterEqual(ride.trip_completed_at, ride.trip_started_at)

		self.driver.refresh_from_db()
		self.rider.refresh_from_db()
		self.assertEqual(self.driver.completed_rides, 1)
		self.assertEqual(self.rider.completed_rides, 1)

		self.assertEqual(len(mail.outbox), 1)
		self.assertEqual(mail.outbox[0].to, ['rider@example.com'])
		self.assertIn('$90.00', mail.outbox[0].body)

	def test_second_accept_conflicts_and_only_one_booking_is_accepted(self):
		ride = make_ride(self.driver)

		first = self.call(accept_ride, self.rider, ride_id=ride.id)
		second = self.call(accept_ride, self.other_rider, ride_id=ride.id)

		self.assertEqual(first.status_code, 200)
		self.assertEqual(second.status_code, 409)
		self.assertFalse(second.data['ok'])
		self.assertEqual(second.data['code'], 'CONFLICT')
		self.assertEqual(ride.bookings.filter(status=BookingStatus.ACCEPTED).count(), 1)

	def test_repeated_accepts_leave_single_accepted_booking(self):
		ride = make_ride(self.driver)
		riders = [make_member('rider_%d' % i, Role.RIDER) for i in range(5)]

		results = []
		for rider in riders:
			try:
				accept_ride_service(Identity(rider.pk, Role.RIDER), ride.id)
				results.append('ok')
			except ConflictError:
				results.append('conflict')

		self.assertEqual(results.count('ok'), 1)
		self.assertEqual(Booking.objects.filter(ride=ride, status=BookingStatus.ACCEPTED).count(), 1)

	def test_accept_promotes_pending_booking_and_expires_others(self):
		ride = make_ride(self.driver, distance_miles=10)

		self.call(request_ride, self.rider, data={'paymentType': 'CASH'}, ride_id=ride.id)
		self.call(request_ride, self.other_rider, data={'paymentType': 'CARD'}, ride_id=ride.id)

		response = self.call(accept_ride, self.rider, ride_id=ride.id)
		self.assertEqual(response.status_code, 200)

		mine = Booking.objects.get(ride=ride, rider=self.rider)
		theirs = Booking.objects.get(ride=ride, rider=self.other_rider)
		# 300 + 200 * 10 = 2300, 10% cash discount
		self.assertEqual(mine.status, BookingStatus.ACCEPTED)
		self.assertEqual(mine.payment_type, 'CASH')
		self.assertEqual(mine.base_amount_cents, 2300)
		self.assertEqual(mine.discount_cents, 230)
		self.assertEqual(mine.final_amount_cents, 2070)
		self.assertEqual(theirs.status, BookingStatus.EXPIRED)
		self.assertTrue(Conversation.objects.filter(ride=ride, driver=self.driver, rider=self.rider).exists())

	def test_driver_cannot_accept_own_ride(self):
		ride = make_ride(self.driver)
		response = self.call(accept_ride, self.driver, ride_id=ride.id)
		self.assertEqual(response.status_code, 403)

	def test_start_requires_accepted_ride(self):
		ride = make_ride(self.driver)
		response = self.call(start_ride, self.driver, ride_id=ride.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'INVALID_STATE')

	def test_start_rejects_second_ride_in_progress(self):
		make_ride(self.driver, status=RideStatus.IN_ROUTE)
		ride = make_ride(self.driver)
		accept_ride_service(Identity(self.rider.pk, Role.RIDER), ride.id)

		response = self.call(start_ride, self.driver, ride_id=ride.id)
		self.assertEqual(response.status_code, 409)

	def test_start_keeps_first_trip_started_at(self):
		ride = make_ride(self.driver)
		accept_ride_service(Identity(self.rider.pk, Role.RIDER), ride.id)
		first_start = timezone.now() - timedelta(minutes=30)
		Ride.objects.filter(pk=ride.pk).update(trip_started_at=first_start)

		response = self.call(start_ride, self.driver, ride_id=ride.id)
		self.assertEqual(response.status_code, 200)

		ride.refresh_from_db()
		self.assertEqual(ride.status, RideStatus.IN_ROUTE)
		self.assertEqual(ride.trip_started_at, first_start)

	def test_receipt_email_failure_does_not_fail_completion(self):
		ride = make_ride(self.driver)
		accept_ride_service(Identity(self.rider.pk, Role.RIDER), ride.id)
		self.call(start_ride, self.driver, ride_id=ride.id)

		with patch('rides.notifications.send_mail', side_effect=ConnectionRefusedError('smtp down')) as mock_send:
			with self.captureOnCommitCallbacks(execute=True):
				response = self.call(complete_ride, self.driver, ride_id=ride.id)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(mock_send.called)
		self.assertEqual(len(mail.outbox), 0)
		ride.refresh_from_db()
		self.assertEqual(ride.status, RideStatus.COMPLETED)
		self.assertEqual(ride.bookings.get().status, BookingStatus.COMPLETED)

	def test_receipt_queue_failure_does_not_fail_completion(self):
		ride = make_ride(self.driver)
		accept_ride_service(Identity(self.rider.pk, Role.RIDER), ride.id)
		self.call(start_ride, self.driver, ride_id=ride.id)

		with patch('rides.tasks.send_ride_receipt_task.delay', side_effect=ConnectionRefusedError('broker down')):
			with self.captureOnCommitCallbacks(execute=True):
				response = self.call(complete_ride, self.driver, ride_id=ride.id)

		self.assertEqual(response.status_code, 200)
		ride.refresh_from_db()
		self.assertEqual(ride.status, RideStatus.COMPLETED)

	def test_full_cash_discount_settles_and_displays_measured_fare(self):
		ride = make_ride(self.driver)
		response = self.call(accept_ride, self.rider, data={'paymentType': 'CASH', 'cashDiscountBps': 10000}, ride_id=ride.id)
		self.assertEqual(response.data['booking']['final_amount_cents'], 0)
		self.call(start_ride, self.driver, ride_id=ride.id)

		with self.captureOnCommitCallbacks(execute=True):
			self.call(complete_ride, self.driver, data={'fareCents': 8700}, ride_id=ride.id)

		ride.refresh_from_db()
		self.assertEqual(ride.total_price_cents, 8700)

		response = self.call(ride_receipt, self.rider, method='get', ride_id=ride.id)
		self.assertEqual(response.data['receipt']['fare']['final_amount_cents'], 8700)

		response = self.call(driver_portal, self.driver, method='get')
		self.assertEqual(response.data['completed'][0]['fare']['final_amount_cents'], 8700)

		self.assertEqual(len(mail.outbox), 1)
		self.assertIn('$87.00', mail.outbox[0].body)

	def test_complete_by_other_driver_is_forbidden(self):
		other_driver = make_member('other_driver', Role.DRIVER)
		ride = make_ride(self.driver, status=RideStatus.IN_ROUTE)

		response = self.call(complete_ride, other_driver, ride_id=ride.id)
		self.assertEqual(response.status_code, 403)

	def test_complete_without_booking_falls_back_to_measured_fare(self):
		ride = make_ride(self.driver, status=RideStatus.IN_ROUTE)
		response = self.call(complete_ride, self.driver, data={'fareCents': 4321}, ride_id=ride.id)

		self.assertEqual(response.status_code, 200)
		ride.refresh_from_db()
		self.assertEqual(ride.total_price_cents, 4321)

	def test_post_rejects_invalid_distance(self):
		payload = dict(RIDE_PAYLOAD, distanceMiles=0)
		response = self.call(rides, self.driver, data=payload)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['code'], 'VALIDATION_ERROR')

	def test_rider_cannot_post_ride(self):
		response = self.call(rides, self.rider, data=RIDE_PAYLOAD)
		self.assertEqual(response.status_code, 403)

	def test_driver_without_membership_is_gated(self):
		driver = User.objects.create_user(username='no_plan', password='pass1234', role=Role.DRIVER)
		response = self.call(rides, driver, data=RIDE_PAYLOAD)

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['code'], 'MEMBERSHIP_REQUIRED')

	@patch('services.membership.gate.trial_allowed_for', return_value=False)
	def test_trial_insufficient_when_policy_requires_paid(self, mock_policy):
		response = self.call(rides, self.driver, data=RIDE_PAYLOAD)

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['code'], 'TRIAL_INSUFFICIENT')


class RideCancellationTests(RideApiTestCase):
	def test_cancel_cascades_to_bookings(self):
		ride = make_ride(self.driver)
		accept_ride_service(Identity(self.rider.pk, Role.RIDER), ride.id)

		response = self.call(cancel_ride, self.driver, data={'reason': 'Car trouble'}, ride_id=ride.id)
		self.assertEqual(response.status_code, 200)

		ride.refresh_from_db()
		self.assertEqual(ride.status, RideStatus.CANCELLED)
		self.assertEqual(ride.cancellation_reason, 'Car trouble')
		self.assertFalse(ride.bookings.exclude(status=BookingStatus.CANCELLED).exists())

	def test_accepted_rider_can_cancel(self):
		ride = make_ride(self.driver)
		accept_ride_service(Identity(self.rider.pk, Role.RIDER), ride.id)

		response = self.call(cancel_ride, self.rider, ride_id=ride.id)
		self.assertEqual(response.status_code, 200)

	def test_stranger_cannot_cancel(self):
		ride = make_ride(self.driver)
		response = self.call(cancel_ride, self.other_rider, ride_id=ride.id)
		self.assertEqual(response.status_code, 403)

	def test_cannot_cancel_in_route_ride(self):
		ride = make_ride(self.driver, status=RideStatus.IN_ROUTE)
		response = self.call(cancel_ride, self.driver, ride_id=ride.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'INVALID_STATE')

	def test_cancel_pending_booking(self):
		ride = make_ride(self.driver)
		response = self.call(request_ride, self.rider, data={'paymentType': 'CARD'}, ride_id=ride.id)
		booking_id = response.data['booking']['id']

		response = self.call(cancel_booking, self.other_rider, booking_id=booking_id)
		self.assertEqual(response.status_code, 403)

		response = self.call(cancel_booking, self.rider, booking_id=booking_id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(Booking.objects.get(pk=booking_id).status, BookingStatus.CANCELLED)


class RideListingTests(RideApiTestCase):
	def test_available_rides_exclude_accepted(self):
		open_ride = make_ride(self.driver)
		taken = make_ride(self.driver)
		accept_ride_service(Identity(self.rider.pk, Role.RIDER), taken.id)

		response = self.call(rides, self.other_rider, method='get')
		ids = [r['id'] for r in response.data['rides']]

		self.assertIn(open_ride.id, ids)
		self.assertNotIn(taken.id, ids)

	def test_listing_shows_pending_cash_price(self):
		ride = make_ride(self.driver)
		self.call(request_ride, self.rider, data={'paymentType': 'CASH'}, ride_id=ride.id)

		response = self.call(rides, self.rider, method='get')
		listed = next(r for r in response.data['rides'] if r['id'] == ride.id)
		self.assertEqual(listed['fare']['final_amount_cents'], 9000)

	def test_portal_and_receipt_show_settled_total(self):
		ride = make_ride(self.driver)
		accept_ride_service(Identity(self.rider.pk, Role.RIDER), ride.id, payment_type='CASH')
		self.call(start_ride, self.driver, ride_id=ride.id)
		self.call(complete_ride, self.driver, ride_id=ride.id)

		response = self.call(driver_portal, self.driver, method='get')
		portal_ride = response.data['completed'][0]
		self.assertEqual(portal_ride['fare']['final_amount_cents'], 9000)

		response = self.call(ride_receipt, self.rider, method='get', ride_id=ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['receipt']['fare']['final_amount_cents'], 9000)
		self.assertEqual(response.data['receipt']['fare']['total_display'], '$90.00')

		response = self.call(ride_receipt, self.other_rider, method='get', ride_id=ride.id)
		self.assertEqual(response.status_code, 403)

	def test_receipt_requires_completed_ride(self):
		ride = make_ride(self.driver)
		response = self.call(ride_receipt, self.driver, method='get', ride_id=ride.id)
		self.assertEqual(response.status_code, 409)


class PendingBookingExpiryTests(TestCase):
	def test_expire_pending_bookings_command(self):
		driver = make_member('driver', Role.DRIVER)
		rider = make_member('rider', Role.RIDER)
		ride = make_ride(driver)
		stale = Booking.objects.create(ride=ride, rider=rider)
		Booking.objects.filter(pk=stale.pk).update(created_at=timezone.now() - timedelta(hours=2))
		fresh = Booking.objects.create(ride=ride, rider=make_member('fresh', Role.RIDER))

		call_command('expire_pending_bookings', minutes=60)

		stale.refresh_from_db()
		fresh.refresh_from_db()
		self.assertEqual(stale.status, BookingStatus.EXPIRED)
		self.assertEqual(fresh.status, BookingStatus.PENDING)


class ConcurrentAcceptTests(TransactionTestCase):
	def test_concurrent_accepts_single_winner(self):
		driver = make_member('driver', Role.DRIVER)
		riders = [make_member('rider_%d' % i, Role.RIDER) for i in range(4)]
		ride = make_ride(driver)

		outcomes = []
		barrier = threading.Barrier(len(riders))

		def attempt(rider):
			try:
				barrier.wait()
				accept_ride_service(Identity(rider.pk, Role.RIDER), ride.id)
				outcomes.append('ok')
			except ConflictError:
				outcomes.append('conflict')
			except (OperationalError, TransientInfrastructureError):
				# SQLite refuses the second writer outright instead of queueing it
				outcomes.append('locked')
			finally:
				connection.close()

		threads = [threading.Thread(target=attempt, args=(r,)) for r in riders]
		for t in threads:
			t.start()
		for t in threads:
			t.join()

		self.assertEqual(len(outcomes), len(riders))
		self.assertEqual(outcomes.count('ok'), 1)
		self.assertEqual(Booking.objects.filter(ride=ride, status=BookingStatus.ACCEPTED).count(), 1)
		ride.refresh_from_db()
		self.assertEqual(ride.status, RideStatus.ACCEPTED)
