from rest_framework import serializers

from .models import Membership, MembershipType


class MembershipSerializer(serializers.ModelSerializer):
    is_paid = serializers.BooleanField(read_only=True)

    class Meta:
        model = Membership
        fields = ["id", "user", "type", "plan", "status", "start_date", "expiry_date",
                  "amount_paid_cents", "is_paid", "created_at", "updated_at"]
        read_only_fields = fields


class MembershipExtendSerializer(serializers.Serializer):
    """Range checks on days happen in the service layer"""
    userId = serializers.IntegerField()
    types = serializers.ListField(
        child=serializers.ChoiceField(choices=MembershipType.choices),
        required=False,
        default=[MembershipType.RIDER, MembershipType.DRIVER],
    )
    days = serializers.FloatField()


class MembershipGrantSerializer(serializers.Serializer):
    userId = serializers.IntegerField()
    type = serializers.ChoiceField(choices=MembershipType.choices)
    days = serializers.FloatField()
    plan = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    amountPaidCents = serializers.IntegerField(required=False, min_value=0, default=0)
