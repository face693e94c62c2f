from rest_framework import status
from rest_framework.views import APIView
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from common.responses import fail, ok
from services.membership import membership_summary
from .identity import identity_from_request
from .serializers import RegisterSerializer, LoginSerializer, UserSerializer


def _tokens_for(user):
    refresh = RefreshToken.for_user(user)
    return {
        'refresh': str(refresh),
        'access': str(refresh.access_token),
    }


class RegisterView(APIView):
    """
    Register a new account (rider or driver); starts a trial membership

    POST Body:
    {
        "username": "john_doe",
        "email": "john@example.com",
        "password": "password123",
        "role": "RIDER",  // or "DRIVER"
        "phone_number": "+1234567890"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        return ok({
            'message': 'User registered successfully',
            'user': UserSerializer(user).data,
            'tokens': _tokens_for(user),
        }, status_code=status.HTTP_201_CREATED)


class LoginView(APIView):
    """Exchange username and password for an access/refresh token pair"""
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = serializer.validated_data

        return ok({
            "message": "Login successful",
            "user": UserSerializer(user).data,
            "tokens": _tokens_for(user),
        })


class RefreshTokenView(APIView):
    """Trade a refresh token for a new access token"""
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        refresh_token = request.data.get('refresh')

        if not refresh_token:
            return fail('Refresh token is required', 'VALIDATION_ERROR', status.HTTP_400_BAD_REQUEST)

        try:
            refresh = RefreshToken(refresh_token)
        except TokenError:
            return fail('Invalid refresh token', 'UNAUTHENTICATED', status.HTTP_401_UNAUTHORIZED)

        return ok({'access': str(refresh.access_token)})


class MeView(APIView):
    """Current account with its membership state"""
    permission_classes = (IsAuthenticated,)

    def get(self, request):
        identity = identity_from_request(request)
        return ok({
            'user': UserSerializer(request.user).data,
            'membership': membership_summary(identity),
        })
