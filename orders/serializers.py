"""DRF serializers for orders APIs (camelCase wire format)."""

from rest_framework import serializers

from . import state
from .models import Order, OrderItem


class OrderItemInputSerializer(serializers.Serializer):
    """One requested line. Name/price/image are accepted but the server copies them from the product."""

    product = serializers.IntegerField(min_value=1)
    qty = serializers.IntegerField(min_value=1)
    name = serializers.CharField(required=False, allow_blank=True)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    image = serializers.CharField(required=False, allow_blank=True)


class ShippingAddressSerializer(serializers.Serializer):
    address = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=100)
    postalCode = serializers.CharField(source='postal_code', max_length=20)
    country = serializers.CharField(max_length=100)


class OrderCreateSerializer(serializers.Serializer):
    orderItems = OrderItemInputSerializer(many=True, allow_empty=True)
    shippingAddress = ShippingAddressSerializer()
    paymentMethod = serializers.CharField(max_length=50)
    taxPrice = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, default=0)
    shippingPrice = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, default=0)
    totalPrice = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)


class OrderItemSerializer(serializers.ModelSerializer):
    """Line item snapshot with the product's current category for display."""

    category = serializers.ReadOnlyField(source='product.category.name')
    lineTotal = serializers.DecimalField(source='line_total', max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'name', 'price', 'qty', 'image', 'category', 'lineTotal']


class OrderSerializer(serializers.ModelSerializer):
    """Full order representation."""

    user = serializers.SerializerMethodField()
    orderItems = OrderItemSerializer(source='items', many=True, read_only=True)
    shippingAddress = serializers.SerializerMethodField()
    paymentMethod = serializers.ReadOnlyField(source='payment_method')
    paymentResult = serializers.SerializerMethodField()
    itemsPrice = serializers.DecimalField(source='items_price', max_digits=12, decimal_places=2, read_only=True)
    taxPrice = serializers.DecimalField(source='tax_price', max_digits=10, decimal_places=2, read_only=True)
    shippingPrice = serializers.DecimalField(source='shipping_price', max_digits=10, decimal_places=2, read_only=True)
    totalPrice = serializers.DecimalField(source='total_price', max_digits=12, decimal_places=2, read_only=True)
    isPaid = serializers.ReadOnlyField(source='is_paid')
    paidAt = serializers.DateTimeField(source='paid_at', read_only=True)
    isShipped = serializers.ReadOnlyField(source='is_shipped')
    isDelivered = serializers.ReadOnlyField(source='is_delivered')
    deliveredAt = serializers.DateTimeField(source='delivered_at', read_only=True)
    orderStatus = serializers.ReadOnlyField(source='order_status')
    shipping = serializers.SerializerMethodField()
    trackingNumber = serializers.ReadOnlyField(source='tracking_number')
    cancelledAt = serializers.DateTimeField(source='cancelled_at', read_only=True)
    cancellationReason = serializers.SerializerMethodField()
    adminNotes = serializers.ReadOnlyField(source='admin_notes')
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'user', 'orderItems', 'shippingAddress', 'paymentMethod', 'paymentResult',
            'itemsPrice', 'taxPrice', 'shippingPrice', 'totalPrice',
            'isPaid', 'paidAt', 'isShipped', 'isDelivered', 'deliveredAt',
            'orderStatus', 'shipping', 'trackingNumber', 'cancelledAt', 'cancellationReason',
            'adminNotes', 'createdAt', 'updatedAt',
        ]

    def get_user(self, obj):
        return {'id': obj.user_id, 'username': obj.user.username, 'email': obj.user.email}

    def get_shippingAddress(self, obj):
        return {
            'address': obj.shipping_address,
            'city': obj.shipping_city,
            'postalCode': obj.shipping_postal_code,
            'country': obj.shipping_country,
        }

    def get_paymentResult(self, obj):
        if not (obj.payment_result_id or obj.payment_result_status):
            return None
        return {
            'id': obj.payment_result_id,
            'status': obj.payment_result_status,
            'updateTime': obj.payment_result_update_time,
            'emailAddress': obj.payment_result_email,
        }

    def get_shipping(self, obj):
        return {
            'carrier': obj.shipping_carrier,
            'trackingNumber': obj.tracking_number,
            'status': obj.shipping_status,
            'shippedAt': serializers.DateTimeField().to_representation(obj.shipped_at) if obj.shipped_at else None,
        }

    def get_cancellationReason(self, obj):
        return obj.cancellation_reason or None


class StatusPatchSerializer(serializers.Serializer):
    isShipped = serializers.BooleanField(required=False)
    isPaid = serializers.BooleanField(required=False)
    orderStatus = serializers.ChoiceField(choices=state.ORDER_STATUS_CHOICES, required=False)
    trackingNumber = serializers.CharField(required=False, allow_blank=True, max_length=120)
    adminNotes = serializers.CharField(required=False, allow_blank=True)

    FIELD_MAP = {
        'isShipped': 'is_shipped',
        'isPaid': 'is_paid',
        'orderStatus': 'order_status',
        'trackingNumber': 'tracking_number',
        'adminNotes': 'admin_notes',
    }

    def validate(self, attrs):
        if not any(name in attrs for name in self.FIELD_MAP):
            raise serializers.ValidationError('Provide at least one of: ' + ', '.join(self.FIELD_MAP) + '.')
        return attrs

    def to_patch(self):
        return {self.FIELD_MAP[name]: value for name, value in self.validated_data.items() if name in self.FIELD_MAP}


class BulkStatusSerializer(StatusPatchSerializer):
    orderIds = serializers.ListField(child=serializers.IntegerField(min_value=1), min_length=1, max_length=100)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)


class PaymentResultSerializer(serializers.Serializer):
    id = serializers.CharField(required=False, allow_blank=True, max_length=255)
    status = serializers.CharField(required=False, allow_blank=True, max_length=50)
    updateTime = serializers.CharField(source='update_time', required=False, allow_blank=True, max_length=64)
    emailAddress = serializers.EmailField(source='email_address', required=False, allow_blank=True)


class ShippingUpdateSerializer(serializers.Serializer):
    carrier = serializers.CharField(required=False, allow_blank=True, max_length=100)
    trackingNumber = serializers.CharField(source='tracking_number', required=False, allow_blank=True, max_length=120)
    status = serializers.ChoiceField(choices=state.SHIPPING_STATUS_CHOICES, required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('Provide at least one of: carrier, trackingNumber, status.')
        return attrs


class ReviewSubmitSerializer(serializers.Serializer):
    productId = serializers.IntegerField(min_value=1)
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField()
    reviewToken = serializers.RegexField(r'^[0-9a-f]{64}$')
    name = serializers.CharField(required=False, allow_blank=True, max_length=100)
