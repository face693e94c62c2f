from rest_framework import serializers
from django.contrib.auth import authenticate
from django.db import transaction

from services.exceptions import ValidationError as ServiceValidationError
from services.membership import grant_trial
from .identity import parse_role
from .models import Role, User


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "role",
            "phone_number",
            "completed_rides",
        ]
        read_only_fields = ["id", "role", "completed_rides"]


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        user = authenticate(username=data["username"], password=data["password"])
        if not user:
            raise serializers.ValidationError("Invalid username or password")
        return user


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)
    role = serializers.CharField(required=False, default=Role.RIDER)

    class Meta:
        model = User
        fields = ['username', 'password', 'email', 'first_name', 'last_name', 'role', 'phone_number']
        extra_kwargs = {
            'email': {'required': True},
            'phone_number': {'required': False},
        }

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("Email already exists")
        return value

    def validate_role(self, value):
        try:
            role = parse_role(value)
        except ServiceValidationError as exc:
            raise serializers.ValidationError(exc.message)
        # Admin accounts are created through the admin site only
        if role == Role.ADMIN:
            raise serializers.ValidationError("Role must be RIDER or DRIVER")
        return role

    @transaction.atomic
    def create(self, validated_data):
        password = validated_data.pop('password')
        user = User(**validated_data)
        user.set_password(password)
        user.save()

        # Every new account starts on a trial for its role
        grant_trial(user.pk, user.role)

        return user
