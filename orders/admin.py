"""Django admin configuration for orders and their line items."""

from django.contrib import admin
from .models import Order, OrderItem


# Line items are a checkout snapshot; keep them read-only.
class OrderItemInline(admin.TabularInline):
    """Inline display of order line items."""

    model = OrderItem
    extra = 0
    readonly_fields = ('product', 'name', 'price', 'qty', 'image')
    can_delete = False
    max_num = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin configuration for customer orders."""

    list_display = ('id', 'user', 'total_price', 'order_status', 'is_paid', 'is_shipped', 'shipping_status', 'created_at')
    list_filter = ('order_status', 'shipping_status', 'is_paid', 'is_shipped', 'created_at')
    search_fields = ('id', 'user__username', 'user__email', 'tracking_number')
    readonly_fields = (
        'items_price', 'total_price', 'paid_at', 'shipped_at', 'delivered_at',
        'cancelled_at', 'cancelled_by', 'created_at', 'updated_at',
    )

    inlines = [OrderItemInline]
