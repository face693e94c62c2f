from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient

from memberships.models import Membership, MembershipType
from services.exceptions import ForbiddenError, UnauthenticatedError, ValidationError
from .identity import Identity, identity_from_user, parse_role
from .models import Role, User


class IdentityTests(SimpleTestCase):
	def test_parse_role_normalizes(self):
		self.assertEqual(parse_role('rider'), Role.RIDER)
		self.assertEqual(parse_role(' DRIVER '), Role.DRIVER)

	def test_legacy_both_maps_to_driver(self):
		self.assertEqual(parse_role('BOTH'), Role.DRIVER)

	def test_unknown_role_rejected(self):
		with self.assertRaises(ValidationError):
			parse_role('PASSENGER')

	def test_require_role(self):
		identity = Identity(account_id=1, role=Role.RIDER)
		self.assertIs(identity.require_role(Role.RIDER), identity)
		with self.assertRaises(ForbiddenError):
			identity.require_role(Role.DRIVER, Role.ADMIN)

	def test_anonymous_is_unauthenticated(self):
		with self.assertRaises(UnauthenticatedError):
			identity_from_user(None)

	def test_invalid_stored_role_is_forbidden(self):
		user = User(pk=7, username='legacy', role='user')
		with self.assertRaises(ForbiddenError):
			identity_from_user(user)


class AuthApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()

	def register(self, **overrides):
		payload = {
			'username': 'jane',
			'email': 'jane@example.com',
			'password': 'correct-horse-42',
			'role': 'DRIVER',
		}
		payload.update(overrides)
		return self.client.post('/api/auth/register/', payload, format='json')

	def test_register_grants_trial(self):
		response = self.register()

		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['ok'])
		self.assertIn('access', response.data['tokens'])
		user = User.objects.get(username='jane')
		self.assertEqual(user.role, Role.DRIVER)
		membership = Membership.objects.get(user=user)
		self.assertEqual(membership.type, MembershipType.DRIVER)
		self.assertFalse(membership.is_paid)

	def test_register_legacy_role(self):
		response = self.register(role='BOTH')
		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['user']['role'], 'DRIVER')

	def test_register_rejects_admin_role(self):
		response = self.register(role='ADMIN')
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['code'], 'VALIDATION_ERROR')

	def test_login_and_me(self):
		self.register(role='RIDER')

		response = self.client.post('/api/auth/login/', {'username': 'jane', 'password': 'correct-horse-42'}, format='json')
		self.assertEqual(response.status_code, 200)
		access = response.data['tokens']['access']

		self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + access)
		response = self.client.get('/api/auth/me/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['user']['username'], 'jane')
		self.assertEqual(response.data['membership']['state'], 'TRIAL')

	def test_me_requires_auth(self):
		response = self.client.get('/api/auth/me/')
		self.assertEqual(response.status_code, 401)
		self.assertFalse(response.data['ok'])
		self.assertEqual(response.data['code'], 'UNAUTHENTICATED')

	def test_refresh_rejects_garbage(self):
		response = self.client.post('/api/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
		self.assertEqual(response.status_code, 401)

	def test_bad_login(self):
		response = self.client.post('/api/auth/login/', {'username': 'nobody', 'password': 'x'}, format='json')
		self.assertEqual(response.status_code, 400)
