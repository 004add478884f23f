"""Serializers for the accounts app.

Includes:
- Registration with phone validation
- Profile, addresses and preferences (camelCase wire format)
- Admin user listing with derived order aggregates
"""

import re

import phonenumbers
from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Address, UserPreferences


User = get_user_model()


def normalize_phone(phone):
    """Validate an international phone number and return it in E.164 form."""
    phone_input = str(phone).strip()
    # Keep a leading + only; "00" is an international prefix too.
    clean_phone = re.sub(r'(?<!^)\+|[^\d+]', '', phone_input)
    if clean_phone.startswith('00'):
        clean_phone = '+' + clean_phone[2:]
    if not clean_phone.startswith('+'):
        clean_phone = '+' + clean_phone

    try:
        parsed_phone = phonenumbers.parse(clean_phone, None)
    except phonenumbers.NumberParseException:
        parsed_phone = None
    if parsed_phone is None or not phonenumbers.is_valid_number(parsed_phone):
        raise serializers.ValidationError(
            f"Phone number {phone_input} is not valid. Include the country code (for example +1 for Canada)."
        )
    return phonenumbers.format_number(parsed_phone, phonenumbers.PhoneNumberFormat.E164)


class AddressSerializer(serializers.ModelSerializer):
    """Address payload used for create/update."""

    isDefault = serializers.BooleanField(source='is_default', required=False)
    firstName = serializers.CharField(source='first_name', max_length=100)
    lastName = serializers.CharField(source='last_name', max_length=100)
    postalCode = serializers.CharField(source='postal_code', max_length=20)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Address
        fields = [
            'id', 'type', 'isDefault', 'firstName', 'lastName', 'address', 'city',
            'state', 'postalCode', 'country', 'phone', 'company', 'createdAt', 'updatedAt',
        ]

    def validate_phone(self, value):
        if not value:
            return value
        return normalize_phone(value)


class UserPreferencesSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserPreferences
        fields = ['newsletter', 'marketing', 'language', 'currency', 'timezone']


class RegisterSerializer(serializers.ModelSerializer):
    """Create a new customer account."""

    password = serializers.CharField(write_only=True, min_length=8)
    firstName = serializers.CharField(source='first_name', required=False, allow_blank=True)
    lastName = serializers.CharField(source='last_name', required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ('id', 'username', 'password', 'email', 'firstName', 'lastName', 'phone')
        read_only_fields = ('id',)

    def validate_username(self, value):
        if not re.match(r'^[a-zA-Z0-9._]+$', value):
            raise serializers.ValidationError("Username may only contain letters, digits, dots and underscores.")
        if len(value) < 4:
            raise serializers.ValidationError("Username must be at least 4 characters long.")
        return value

    def validate_email(self, value):
        value = value.lower().strip()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("An account with this email already exists.")
        return value

    def validate_phone(self, value):
        if not value:
            return None
        return normalize_phone(value)

    def create(self, validated_data):
        return User.objects.create_user(role=User.ROLE_CUSTOMER, **validated_data)


class UserProfileSerializer(serializers.ModelSerializer):
    """The authenticated user's own profile, with addresses and preferences."""

    firstName = serializers.CharField(source='first_name', required=False, allow_blank=True)
    lastName = serializers.CharField(source='last_name', required=False, allow_blank=True)
    dateJoined = serializers.DateTimeField(source='date_joined', read_only=True)
    isAdmin = serializers.BooleanField(source='is_admin_user', read_only=True)
    addresses = AddressSerializer(many=True, read_only=True)
    preferences = UserPreferencesSerializer(read_only=True)

    class Meta:
        model = User
        fields = (
            'id', 'username', 'email', 'firstName', 'lastName', 'phone', 'role', 'status',
            'isAdmin', 'dateJoined', 'addresses', 'preferences',
        )
        read_only_fields = ('username', 'role', 'status')

    def validate_email(self, value):
        value = value.lower().strip()
        if User.objects.filter(email__iexact=value).exclude(pk=self.instance.pk).exists():
            raise serializers.ValidationError("An account with this email already exists.")
        return value

    def validate_phone(self, value):
        if not value:
            return None
        return normalize_phone(value)


class AdminUserSerializer(serializers.ModelSerializer):
    """Admin view of a user. Order aggregates come from queryset annotations."""

    firstName = serializers.CharField(source='first_name', required=False, allow_blank=True)
    lastName = serializers.CharField(source='last_name', required=False, allow_blank=True)
    statusReason = serializers.CharField(source='status_reason', required=False, allow_blank=True, allow_null=True)
    dateJoined = serializers.DateTimeField(source='date_joined', read_only=True)
    lastLogin = serializers.DateTimeField(source='last_login', read_only=True)
    isAdmin = serializers.BooleanField(source='is_admin_user', read_only=True)
    orderCount = serializers.SerializerMethodField()
    totalSpent = serializers.SerializerMethodField()
    lastOrderDate = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = (
            'id', 'username', 'email', 'firstName', 'lastName', 'phone', 'role', 'status',
            'statusReason', 'isAdmin', 'dateJoined', 'lastLogin', 'orderCount', 'totalSpent', 'lastOrderDate',
        )
        read_only_fields = ('username', 'role', 'status')

    def get_orderCount(self, obj):
        return getattr(obj, 'order_count', None) or 0

    def get_totalSpent(self, obj):
        total = getattr(obj, 'total_spent', None)
        return float(total) if total is not None else 0.0

    def get_lastOrderDate(self, obj):
        last = getattr(obj, 'last_order_date', None)
        return serializers.DateTimeField().to_representation(last) if last else None

    def validate_email(self, value):
        value = value.lower().strip()
        if User.objects.filter(email__iexact=value).exclude(pk=self.instance.pk).exists():
            raise serializers.ValidationError("An account with this email already exists.")
        return value

    def validate_phone(self, value):
        if not value:
            return None
        return normalize_phone(value)


class UserStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=User.STATUS_CHOICES)
    statusReason = serializers.CharField(required=False, allow_blank=True, max_length=255)


class UserRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES)
