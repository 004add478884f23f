"""Database models for orders and their line items."""

import secrets
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from products.models import Product

from . import state


def generate_review_token():
    """32 random bytes, hex encoded (64 characters)."""
    return secrets.token_hex(32)


class Order(models.Model):
    """A placed purchase.

    Line items and the shipping address are fixed at checkout; afterwards the
    order only changes through payment, shipping and status updates.
    """

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')

    shipping_address = models.CharField(max_length=255)
    shipping_city = models.CharField(max_length=100)
    shipping_postal_code = models.CharField(max_length=20)
    shipping_country = models.CharField(max_length=100)

    payment_method = models.CharField(max_length=50)
    payment_result_id = models.CharField(max_length=255, blank=True, default='')
    payment_result_status = models.CharField(max_length=50, blank=True, default='')
    payment_result_update_time = models.CharField(max_length=64, blank=True, default='')
    payment_result_email = models.EmailField(blank=True, default='')

    items_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'), validators=[MinValueValidator(Decimal('0'))])
    tax_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'), validators=[MinValueValidator(Decimal('0'))])
    shipping_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'), validators=[MinValueValidator(Decimal('0'))])
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'), validators=[MinValueValidator(Decimal('0'))])

    is_paid = models.BooleanField(default=False)
    paid_at = models.DateTimeField(null=True, blank=True)
    is_shipped = models.BooleanField(default=False)
    is_delivered = models.BooleanField(default=False)
    delivered_at = models.DateTimeField(null=True, blank=True)

    order_status = models.CharField(max_length=20, choices=state.ORDER_STATUS_CHOICES, default=state.PENDING)

    shipping_carrier = models.CharField(max_length=100, blank=True, default='')
    tracking_number = models.CharField(max_length=120, blank=True, default='')
    shipping_status = models.CharField(max_length=20, choices=state.SHIPPING_STATUS_CHOICES, default=state.SHIPPING_PENDING)
    shipped_at = models.DateTimeField(null=True, blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True, default='')
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+',
    )
    admin_notes = models.TextField(blank=True, default='')

    review_token = models.CharField(max_length=64, unique=True, default=generate_review_token, editable=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='orders_user_created_idx'),
            models.Index(fields=['is_paid', 'is_delivered'], name='orders_paid_delivered_idx'),
            models.Index(fields=['order_status', 'created_at'], name='orders_status_created_idx'),
            models.Index(fields=['created_at'], name='orders_created_idx'),
            models.Index(fields=['total_price'], name='orders_total_idx'),
            models.Index(fields=['shipping_country'], name='orders_country_idx'),
        ]

    def __str__(self):
        return f"Order #{self.id} - {self.user_id}"

    @property
    def lines_total(self):
        return sum((item.line_total for item in self.items.all()), Decimal('0'))

    def is_owned_by(self, user):
        return user is not None and self.user_id == getattr(user, 'pk', None)


class OrderItem(models.Model):
    """Snapshot of one purchased product at checkout time."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    qty = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    image = models.CharField(max_length=500, blank=True, default='')

    class Meta:
        ordering = ['id']
        indexes = [
            models.Index(fields=['order', 'product'], name='orders_item_order_product_idx'),
        ]

    def __str__(self):
        return f"{self.qty} x {self.name} (Order #{self.order_id})"

    @property
    def line_total(self):
        return self.price * self.qty
