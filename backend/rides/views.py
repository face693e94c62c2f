from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from accounts.identity import identity_from_request
from common.responses import ok
from services.ride_management import (
    Location,
    accept_ride as accept_ride_service,
    available_rides,
    cancel_booking as cancel_booking_service,
    cancel_ride as cancel_ride_service,
    complete_trip,
    driver_portal as driver_portal_service,
    post_ride,
    request_booking,
    ride_for_receipt,
    rider_rides,
    start_trip,
)
from .notifications import dispatch_receipt_email
from .serializers import (
    BookingSerializer,
    PaymentTermsSerializer,
    RideCancelSerializer,
    RidePostSerializer,
    RideReceiptSerializer,
    RideSerializer,
    TripCompleteSerializer,
)


def _ride_response(result, request, status_code=status.HTTP_200_OK, **extra):
    identity = identity_from_request(request)
    ride_data = RideSerializer(result.ride, context={'viewer_id': identity.account_id}).data
    booking_data = BookingSerializer(result.booking).data if result.booking else None
    return ok(
        {'ride': ride_data, 'booking': booking_data, 'message': result.message},
        status_code=status_code,
        **(result.extra or {}),
        **extra,
    )


# ==================== Ride listing / posting ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def rides(request):
    """
    GET: open rides nobody has accepted yet (the ride board)
    POST: driver posts a new ride
    """
    identity = identity_from_request(request)

    if request.method == 'GET':
        serializer = RideSerializer(available_rides(), many=True, context={'viewer_id': identity.account_id})
        return ok({'rides': serializer.data})

    serializer = RidePostSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = post_ride(
        identity,
        origin=Location(**data['origin']),
        destination=Location(**data['destination']),
        distance_miles_value=data['distanceMiles'],
        departure_time=data['departureTime'],
        passenger_count=data['passengerCount'],
    )
    return _ride_response(result, request, status_code=status.HTTP_201_CREATED)


# ==================== Rider Ride APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def request_ride(request, ride_id):
    """Rider asks for a seat; creates or updates a PENDING booking"""
    serializer = PaymentTermsSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = request_booking(
        identity_from_request(request),
        ride_id,
        serializer.validated_data['paymentType'],
        serializer.validated_data['cashDiscountBps'],
    )
    return _ride_response(result, request, status_code=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_ride(request, ride_id):
    """Rider accepts an OPEN ride; the fare is frozen on the booking"""
    serializer = PaymentTermsSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = accept_ride_service(
        identity_from_request(request),
        ride_id,
        payment_type=serializer.validated_data['paymentType'],
        cash_discount_bps=serializer.validated_data['cashDiscountBps'],
    )
    return _ride_response(result, request)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_rides(request):
    """Rides the current account has booked"""
    identity = identity_from_request(request)
    serializer = RideSerializer(rider_rides(identity), many=True, context={'viewer_id': identity.account_id})
    return ok({'rides': serializer.data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_booking(request, booking_id):
    """Rider withdraws a PENDING booking"""
    result = cancel_booking_service(identity_from_request(request), booking_id)
    return ok({'booking': BookingSerializer(result.booking).data, 'message': result.message})


# ==================== Driver Ride APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def start_ride(request, ride_id):
    """Driver picked the rider up"""
    result = start_trip(identity_from_request(request), ride_id)
    return _ride_response(result, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def complete_ride(request, ride_id):
    """Driver dropped the rider off; settles the ride total"""
    serializer = TripCompleteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = complete_trip(
        identity_from_request(request),
        ride_id,
        measured_distance_miles=serializer.validated_data['distanceMiles'],
        measured_fare_cents=serializer.validated_data['fareCents'],
    )
    return _ride_response(result, request)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def driver_portal(request):
    """Driver's rides grouped by lifecycle stage"""
    identity = identity_from_request(request)
    groups = driver_portal_service(identity)
    context = {'viewer_id': identity.account_id}
    return ok({
        name: RideSerializer(group, many=True, context=context).data
        for name, group in groups.items()
    })


# ==================== Shared APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_ride(request, ride_id):
    """Cancel a ride before the trip starts (driver, accepted rider or admin)"""
    serializer = RideCancelSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = cancel_ride_service(identity_from_request(request), ride_id, serializer.validated_data['reason'])
    return _ride_response(result, request)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def ride_receipt(request, ride_id):
    ride = ride_for_receipt(identity_from_request(request), ride_id)
    return ok({'receipt': RideReceiptSerializer(ride).data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def email_ride_receipt(request, ride_id):
    """Queue the receipt to the requesting account's email address"""
    ride = ride_for_receipt(identity_from_request(request), ride_id)

    email = (request.user.email or '').strip()
    if not email:
        return ok({'queued': False, 'message': 'No email address on file.'})

    queued = dispatch_receipt_email(ride.id, [email])
    return ok({'queued': queued > 0, 'message': 'Receipt email queued.' if queued else 'Could not queue receipt email.'})
