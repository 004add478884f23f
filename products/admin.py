"""Django admin configuration for product catalog models."""

from django.contrib import admin
from django.utils.html import format_html
from django.conf import settings
from .models import Category, Product, Review


class ReviewInline(admin.TabularInline):
    model = Review
    extra = 0
    readonly_fields = ('name', 'rating', 'comment', 'order', 'created_at')


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ('name', 'created_at')
    search_fields = ('name',)


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin configuration for products, with stock highlighting."""

    list_display = ('name', 'category', 'price', 'colored_stock', 'visibility', 'rating')
    list_filter = (('category', admin.RelatedOnlyFieldListFilter), 'visibility')
    search_fields = ('name', 'description')
    inlines = [ReviewInline]

    def colored_stock(self, obj):
        """Render stock in color to highlight low inventory."""
        threshold = getattr(settings, 'LOW_STOCK_THRESHOLD', 10)
        if obj.stock <= threshold // 3:
            color = 'red'
        elif obj.stock < threshold:
            color = 'orange'
        else:
            color = 'green'
        return format_html('<b style="color: {};">{}</b>', color, obj.stock)

    colored_stock.short_description = 'Stock'
    colored_stock.admin_order_field = 'stock'


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ('product', 'name', 'rating', 'order', 'created_at')
    list_filter = ('rating',)
