from rest_framework import serializers
from django.contrib.auth import get_user_model

from services.pricing import format_usd, resolve_display_fare
from .models import Booking, PaymentType, Ride

User = get_user_model()


class UserBasicSerializer(serializers.ModelSerializer):
    """Public view of a ride participant"""

    class Meta:
        model = User
        fields = ['id', 'username', 'first_name', 'last_name', 'phone_number', 'role']
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    """Serializer for Bookings, including the frozen fare snapshot"""
    rider = UserBasicSerializer(read_only=True)

    class Meta:
        model = Booking
        fields = ['id', 'ride', 'rider', 'status', 'payment_type', 'cash_discount_bps',
                  'base_amount_cents', 'discount_cents', 'final_amount_cents', 'currency',
                  'created_at', 'accepted_at', 'completed_at', 'cancelled_at']
        read_only_fields = fields


class RideSerializer(serializers.ModelSerializer):
    """Serializer for Rides with the displayed fare"""
    driver = UserBasicSerializer(read_only=True)
    fare = serializers.SerializerMethodField()
    booking = serializers.SerializerMethodField()
    conversation_id = serializers.SerializerMethodField()

    class Meta:
        model = Ride
        fields = ['id', 'driver', 'origin_address', 'origin_lat', 'origin_lng',
                  'destination_address', 'destination_lat', 'destination_lng',
                  'distance_miles', 'departure_time', 'passenger_count', 'status',
                  'created_at', 'accepted_at', 'trip_started_at', 'trip_completed_at',
                  'cancelled_at', 'cancellation_reason', 'total_price_cents',
                  'fare', 'booking', 'conversation_id']
        read_only_fields = fields

    def get_fare(self, ride):
        fare = resolve_display_fare(ride)
        return {**fare.as_dict(), 'display': format_usd(fare.final_amount_cents)}

    def get_booking(self, ride):
        """The accepted/completed booking, or the viewer's own booking otherwise"""
        bookings = list(ride.bookings.all())
        for booking in bookings:
            if booking.status in ('ACCEPTED', 'COMPLETED'):
                return BookingSerializer(booking).data

        viewer_id = self.context.get('viewer_id')
        if viewer_id is not None:
            own = [b for b in bookings if b.rider_id == viewer_id]
            if own:
                return BookingSerializer(own[-1]).data
        return None

    def get_conversation_id(self, ride):
        conversations = list(ride.conversations.all())
        return conversations[0].id if conversations else None


class RideReceiptSerializer(serializers.ModelSerializer):
    """Receipt for a completed ride"""
    driver = UserBasicSerializer(read_only=True)
    rider = serializers.SerializerMethodField()
    payment_type = serializers.SerializerMethodField()
    fare = serializers.SerializerMethodField()

    class Meta:
        model = Ride
        fields = ['id', 'driver', 'rider', 'origin_address', 'destination_address',
                  'distance_miles', 'departure_time', 'trip_started_at', 'trip_completed_at',
                  'total_price_cents', 'payment_type', 'fare']
        read_only_fields = fields

    def _booking(self, ride):
        from services.ride_management import receipt_booking
        return receipt_booking(ride)

    def get_rider(self, ride):
        booking = self._booking(ride)
        return UserBasicSerializer(booking.rider).data if booking else None

    def get_payment_type(self, ride):
        booking = self._booking(ride)
        return booking.payment_type if booking else PaymentType.CARD

    def get_fare(self, ride):
        fare = resolve_display_fare(ride)
        return {
            **fare.as_dict(),
            'base_display': format_usd(fare.base_amount_cents),
            'discount_display': format_usd(fare.discount_cents),
            'total_display': format_usd(fare.final_amount_cents),
        }


# ==================== Input serializers ====================

class LocationSerializer(serializers.Serializer):
    address = serializers.CharField()
    lat = serializers.FloatField()
    lng = serializers.FloatField()


class RidePostSerializer(serializers.Serializer):
    """Input for posting a ride; range checks live in the service layer"""
    origin = LocationSerializer()
    destination = LocationSerializer()
    distanceMiles = serializers.FloatField()
    departureTime = serializers.CharField()
    passengerCount = serializers.IntegerField(required=False, default=1)


class PaymentTermsSerializer(serializers.Serializer):
    paymentType = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    cashDiscountBps = serializers.IntegerField(required=False, allow_null=True, default=None)


class TripCompleteSerializer(serializers.Serializer):
    distanceMiles = serializers.FloatField(required=False, allow_null=True, default=None)
    fareCents = serializers.IntegerField(required=False, allow_null=True, default=None)


class RideCancelSerializer(serializers.Serializer):
    """Serializer for ride cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, default="")
