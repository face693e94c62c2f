from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import Role, User
from services.exceptions import NotFoundError, ValidationError
from services.membership import (
	MembershipState,
	evaluate_membership,
	extend_membership,
	grant_membership,
	guard_membership,
)
from .models import Membership, MembershipStatus, MembershipType
from .views import MembershipExtendView, MembershipGrantView, MyMembershipView


class MembershipGateDecisionTests(SimpleTestCase):
	def setUp(self):
		self.now = timezone.now()

	def membership(self, expiry_delta, amount_paid_cents=0):
		return Membership(
			type=MembershipType.RIDER,
			start_date=self.now - timedelta(days=1),
			expiry_date=self.now + expiry_delta if expiry_delta is not None else None,
			amount_paid_cents=amount_paid_cents,
		)

	def test_no_membership(self):
		decision = evaluate_membership(None, allow_trial=True, now=self.now)
		self.assertFalse(decision.allowed)
		self.assertEqual(decision.state, MembershipState.NONE)
		self.assertEqual(decision.code, 'MEMBERSHIP_REQUIRED')

	def test_trial_allowed(self):
		decision = evaluate_membership(self.membership(timedelta(days=10)), allow_trial=True, now=self.now)
		self.assertTrue(decision.allowed)
		self.assertEqual(decision.state, MembershipState.TRIAL)

	def test_trial_insufficient(self):
		decision = evaluate_membership(self.membership(timedelta(days=10)), allow_trial=False, now=self.now)
		self.assertFalse(decision.allowed)
		self.assertEqual(decision.state, MembershipState.TRIAL)
		self.assertEqual(decision.code, 'TRIAL_INSUFFICIENT')

	def test_paid_is_active(self):
		decision = evaluate_membership(
			self.membership(timedelta(days=10), amount_paid_cents=999), allow_trial=False, now=self.now
		)
		self.assertTrue(decision.allowed)
		self.assertEqual(decision.state, MembershipState.ACTIVE_PAID)

	def test_expired(self):
		decision = evaluate_membership(self.membership(timedelta(days=-1), 999), allow_trial=True, now=self.now)
		self.assertFalse(decision.allowed)
		self.assertEqual(decision.state, MembershipState.EXPIRED)

	def test_expiry_boundary_is_expired(self):
		decision = evaluate_membership(self.membership(timedelta(0)), allow_trial=True, now=self.now)
		self.assertEqual(decision.state, MembershipState.EXPIRED)

	def test_missing_expiry_fails_closed(self):
		decision = evaluate_membership(self.membership(None), allow_trial=True, now=self.now)
		self.assertFalse(decision.allowed)
		self.assertEqual(decision.code, 'MEMBERSHIP_INVALID')


class ExtendMembershipTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='rider', password='pass1234', role=Role.RIDER)
		self.now = timezone.now()

	def test_extend_creates_membership_when_none(self):
		memberships = extend_membership(self.user.pk, [MembershipType.RIDER], 30, now=self.now)

		self.assertEqual(len(memberships), 1)
		self.assertEqual(memberships[0].expiry_date, self.now + timedelta(days=30))
		self.assertEqual(memberships[0].amount_paid_cents, 0)
		decision = guard_membership(self.user.pk, Role.RIDER, allow_trial=True, now=self.now)
		self.assertEqual(decision.state, MembershipState.TRIAL)

	def test_extend_is_cumulative(self):
		extend_membership(self.user.pk, [MembershipType.RIDER], 30, now=self.now)
		memberships = extend_membership(self.user.pk, [MembershipType.RIDER], 30, now=self.now)

		self.assertEqual(memberships[0].expiry_date, self.now + timedelta(days=60))
		self.assertEqual(Membership.objects.filter(user=self.user).count(), 1)

	def test_extend_lapsed_restarts_from_now(self):
		grant_membership(self.user.pk, MembershipType.RIDER, 5, now=self.now - timedelta(days=20))
		memberships = extend_membership(self.user.pk, [MembershipType.RIDER], 10, now=self.now)

		self.assertEqual(memberships[0].expiry_date, self.now + timedelta(days=10))
		self.assertEqual(memberships[0].status, MembershipStatus.ACTIVE)

	def test_extend_both_types(self):
		memberships = extend_membership(self.user.pk, ['rider', 'DRIVER'], 7.9, now=self.now)
		self.assertEqual({m.type for m in memberships}, {'RIDER', 'DRIVER'})
		self.assertTrue(all(m.expiry_date == self.now + timedelta(days=7) for m in memberships))

	def test_extend_rejects_bad_days(self):
		for days in (0, -3, 3651, 'abc', float('nan')):
			with self.assertRaises(ValidationError):
				extend_membership(self.user.pk, [MembershipType.RIDER], days, now=self.now)

	def test_extend_unknown_user(self):
		with self.assertRaises(NotFoundError):
			extend_membership(999999, [MembershipType.RIDER], 10)

	def test_newest_grant_is_authoritative(self):
		grant_membership(self.user.pk, MembershipType.RIDER, 30, amount_paid_cents=999, now=self.now - timedelta(days=2))
		grant_membership(self.user.pk, MembershipType.RIDER, 30, now=self.now - timedelta(days=1))

		decision = guard_membership(self.user.pk, Role.RIDER, allow_trial=True, now=self.now)
		self.assertEqual(decision.state, MembershipState.TRIAL)

	def test_extend_memberships_command(self):
		out = StringIO()
		call_command('extend_memberships', user=self.user.pk, types=['DRIVER'], days=14, stdout=out)

		self.assertIn('DRIVER membership', out.getvalue())
		self.assertTrue(Membership.objects.filter(user=self.user, type=MembershipType.DRIVER).exists())


class MembershipApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.admin = User.objects.create_user(username='admin', password='pass1234', role=Role.ADMIN)
		self.rider = User.objects.create_user(username='rider', password='pass1234', role=Role.RIDER)

	def post(self, view, user, data):
		request = self.factory.post('/', data, format='json')
		force_authenticate(request, user=user)
		return view.as_view()(request)

	def test_admin_can_extend(self):
		response = self.post(MembershipExtendView, self.admin, {'userId': self.rider.pk, 'types': ['RIDER'], 'days': 30})
		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['ok'])
		self.assertEqual(len(response.data['memberships']), 1)

	def test_rider_cannot_extend(self):
		response = self.post(MembershipExtendView, self.rider, {'userId': self.rider.pk, 'days': 30})
		self.assertEqual(response.status_code, 403)
		self.assertFalse(response.data['ok'])

	def test_admin_grant_paid(self):
		response = self.post(
			MembershipGrantView, self.admin,
			{'userId': self.rider.pk, 'type': 'RIDER', 'days': 30, 'plan': 'monthly', 'amountPaidCents': 1999},
		)
		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['membership']['is_paid'])

	def test_me_reports_state(self):
		grant_membership(self.rider.pk, MembershipType.RIDER, 3)
		request = self.factory.get('/')
		force_authenticate(request, user=self.rider)
		response = MyMembershipView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['state'], 'TRIAL')
		self.assertEqual(response.data['membership']['days_remaining'], 3)
