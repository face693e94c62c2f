from unittest.mock import patch

from django.db import OperationalError
from django.test import SimpleTestCase, override_settings

from common.retry import is_transient, retry_on_transient
from common.utils import distance_miles
from rides.models import Booking, BookingStatus, PaymentType, Ride
from services.exceptions import TransientInfrastructureError, ValidationError
from services.pricing import (
	base_fare_cents,
	compute_fare,
	contract_fare,
	format_usd,
	resolve_display_fare,
)
from services.ride_management import settle_total_cents


class FareEngineTests(SimpleTestCase):
	def test_cash_discount(self):
		fare = compute_fare(10000, PaymentType.CASH, 1000)
		self.assertEqual(fare.base_amount_cents, 10000)
		self.assertEqual(fare.discount_cents, 1000)
		self.assertEqual(fare.final_amount_cents, 9000)

	def test_card_never_discounted(self):
		fare = compute_fare(10000, PaymentType.CARD, 1000)
		self.assertEqual(fare.discount_cents, 0)
		self.assertEqual(fare.final_amount_cents, 10000)

	def test_rounds_half_up(self):
		# 1005 * 5% = 50.25 -> 50; 1010 * 5% = 50.5 -> 51
		self.assertEqual(compute_fare(1005, PaymentType.CASH, 500).discount_cents, 50)
		self.assertEqual(compute_fare(1010, PaymentType.CASH, 500).discount_cents, 51)

	def test_final_never_negative(self):
		fare = compute_fare(500, PaymentType.CASH, 20000)
		self.assertEqual(fare.final_amount_cents, 0)

	def test_rejects_bad_input(self):
		for base, payment_type, bps in ((-1, PaymentType.CASH, 0), (100.5, PaymentType.CASH, 0), (100, 'BITCOIN', 0), (100, PaymentType.CASH, -5), (True, PaymentType.CASH, 0)):
			with self.assertRaises(ValidationError):
				compute_fare(base, payment_type, bps)

	def test_payment_type_is_case_insensitive(self):
		self.assertEqual(compute_fare(1000, 'cash', 1000).final_amount_cents, 900)

	def test_base_fare(self):
		self.assertEqual(base_fare_cents(0), 300)
		self.assertEqual(base_fare_cents(48.5), 10000)

	@override_settings(FARE_BOOKING_FEE_CENTS=0, FARE_PER_MILE_CENTS=150)
	def test_base_fare_uses_settings(self):
		self.assertEqual(base_fare_cents(10), 1500)

	def test_format_usd(self):
		self.assertEqual(format_usd(123456), '$1,234.56')
		self.assertEqual(format_usd(None), '$0.00')


class DisplayFarePrecedenceTests(SimpleTestCase):
	def ride(self, **kwargs):
		return Ride(distance_miles=48.5, **kwargs)

	def test_snapshot_wins(self):
		booking = Booking(
			status=BookingStatus.ACCEPTED,
			payment_type=PaymentType.CASH,
			base_amount_cents=10000,
			discount_cents=1000,
			final_amount_cents=9000,
		)
		fare = resolve_display_fare(self.ride(total_price_cents=8700), [booking])
		self.assertEqual(fare.final_amount_cents, 9000)

	def test_pending_booking_prices_stored_total(self):
		pending = Booking(status=BookingStatus.PENDING, payment_type=PaymentType.CASH, cash_discount_bps=1000)
		fare = resolve_display_fare(self.ride(total_price_cents=5000), [pending])
		self.assertEqual(fare.final_amount_cents, 4500)

	def test_falls_back_to_card_price(self):
		fare = resolve_display_fare(self.ride(), [])
		self.assertEqual(fare.final_amount_cents, 10000)
		self.assertEqual(fare.discount_cents, 0)

	def test_cancelled_booking_ignored(self):
		cancelled = Booking(status=BookingStatus.CANCELLED, payment_type=PaymentType.CASH, final_amount_cents=1)
		fare = resolve_display_fare(self.ride(), [cancelled])
		self.assertEqual(fare.final_amount_cents, 10000)

	def test_zero_snapshot_falls_through_to_ride_total(self):
		booking = Booking(
			status=BookingStatus.COMPLETED,
			payment_type=PaymentType.CASH,
			cash_discount_bps=10000,
			base_amount_cents=10000,
			discount_cents=10000,
			final_amount_cents=0,
		)
		ride = self.ride(total_price_cents=8700)
		self.assertIsNone(contract_fare(booking))
		self.assertEqual(resolve_display_fare(ride, [booking]).final_amount_cents, 8700)

	def test_settlement_and_display_agree(self):
		for final_amount in (0, 9000):
			booking = Booking(
				status=BookingStatus.ACCEPTED,
				payment_type=PaymentType.CASH,
				base_amount_cents=10000,
				discount_cents=10000 - final_amount,
				final_amount_cents=final_amount,
			)
			ride = self.ride()
			ride.total_price_cents = settle_total_cents(ride, booking, 8700)
			booking.status = BookingStatus.COMPLETED
			self.assertEqual(
				resolve_display_fare(ride, [booking]).final_amount_cents,
				ride.total_price_cents,
			)


class RetryTests(SimpleTestCase):
	def test_classifies_by_type(self):
		self.assertTrue(is_transient(OperationalError('server closed the connection')))
		self.assertFalse(is_transient(ValueError('connection reset')))

	@override_settings(TRANSIENT_RETRY_BACKOFF_SECONDS=0)
	@patch('common.retry.connection')
	def test_retries_then_succeeds(self, mock_connection):
		mock_connection.in_atomic_block = False
		calls = []

		@retry_on_transient(attempts=3)
		def flaky():
			calls.append(1)
			if len(calls) < 3:
				raise OperationalError('connection dropped')
			return 'ok'

		self.assertEqual(flaky(), 'ok')
		self.assertEqual(len(calls), 3)

	@override_settings(TRANSIENT_RETRY_BACKOFF_SECONDS=0)
	@patch('common.retry.connection')
	def test_gives_up_with_transient_error(self, mock_connection):
		mock_connection.in_atomic_block = False

		@retry_on_transient(attempts=2)
		def broken():
			raise OperationalError('connection dropped')

		with self.assertRaises(TransientInfrastructureError):
			broken()

	@patch('common.retry.connection')
	def test_no_retry_inside_atomic_block(self, mock_connection):
		mock_connection.in_atomic_block = True
		calls = []

		@retry_on_transient(attempts=3)
		def broken():
			calls.append(1)
			raise OperationalError('connection dropped')

		with self.assertRaises(TransientInfrastructureError):
			broken()
		self.assertEqual(len(calls), 1)

	def test_other_errors_propagate(self):
		@retry_on_transient
		def bad():
			raise ValueError('nope')

		with self.assertRaises(ValueError):
			bad()


class GeoTests(SimpleTestCase):
	def test_distance_miles(self):
		# New York City Hall to Philadelphia City Hall is about 80 miles
		miles = distance_miles(40.7128, -74.0060, 39.9526, -75.1652)
		self.assertAlmostEqual(miles, 80.6, delta=1.0)

	def test_zero_distance(self):
		self.assertEqual(distance_miles(10, 10, 10, 10), 0)
