from rest_framework import status
from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated

from accounts.identity import identity_from_request
from accounts.models import Role
from common.responses import ok
from services.membership import extend_membership, grant_membership, membership_summary

from memberships.serializers import (
    MembershipExtendSerializer,
    MembershipGrantSerializer,
    MembershipSerializer,
)


class MyMembershipView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        identity = identity_from_request(request)
        return ok(membership_summary(identity))


class MembershipExtendView(APIView):
    """Admin: push expiry forward for one or both membership types"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        identity = identity_from_request(request)
        identity.require_role(Role.ADMIN, message="Only admins can extend memberships.")

        serializer = MembershipExtendSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        memberships = extend_membership(data["userId"], data["types"], data["days"])
        return ok({"memberships": MembershipSerializer(memberships, many=True).data})


class MembershipGrantView(APIView):
    """Admin: record a new trial or paid grant"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        identity = identity_from_request(request)
        identity.require_role(Role.ADMIN, message="Only admins can grant memberships.")

        serializer = MembershipGrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        membership = grant_membership(
            data["userId"],
            data["type"],
            data["days"],
            plan=data["plan"] or None,
            amount_paid_cents=data["amountPaidCents"],
        )
        return ok({"membership": MembershipSerializer(membership).data}, status_code=status.HTTP_201_CREATED)
