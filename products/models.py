"""Database models for the product catalog and reviews."""

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Avg, Count


class Category(models.Model):
    """Product category."""

    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "Categories"
        ordering = ['name']

    def __str__(self):
        return self.name


class Product(models.Model):
    """Sellable product. Orders copy name/price/image at checkout."""

    VISIBILITY_VISIBLE = 'visible'
    VISIBILITY_HIDDEN = 'hidden'
    VISIBILITY_ARCHIVED = 'archived'
    VISIBILITY_CHOICES = (
        (VISIBILITY_VISIBLE, 'Visible'),
        (VISIBILITY_HIDDEN, 'Hidden'),
        (VISIBILITY_ARCHIVED, 'Archived'),
    )

    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='products')
    name = models.CharField(max_length=255)
    description = models.TextField()
    image = models.CharField(max_length=500, blank=True, default='')
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    discount_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    stock = models.PositiveIntegerField(default=0)
    visibility = models.CharField(max_length=10, choices=VISIBILITY_CHOICES, default=VISIBILITY_VISIBLE)
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=Decimal('0'))
    num_reviews = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['id']
        indexes = [
            models.Index(fields=['category', 'price'], name='products_category_price_idx'),
            models.Index(fields=['visibility'], name='products_visibility_idx'),
        ]

    def __str__(self):
        return self.name

    @property
    def effective_price(self):
        """Price charged at checkout: the discount price when one is set."""
        if self.discount_price is not None and self.discount_price < self.price:
            return self.discount_price
        return self.price

    def refresh_rating(self):
        """Recompute ``rating`` and ``num_reviews`` from stored reviews."""
        stats = self.reviews.aggregate(avg=Avg('rating'), count=Count('id'))
        self.num_reviews = stats['count'] or 0
        self.rating = Decimal(str(round(stats['avg'] or 0, 2)))
        self.save(update_fields=['rating', 'num_reviews', 'updated_at'])


class Review(models.Model):
    """Product review, either by a signed-in user or through an order's review token."""

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='reviews')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='reviews')
    order = models.ForeignKey('orders.Order', on_delete=models.SET_NULL, null=True, blank=True, related_name='reviews')
    name = models.CharField(max_length=100)
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    comment = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['order', 'product'], name='unique_review_per_order_product'),
        ]

    def __str__(self):
        return f"{self.rating}/5 for {self.product_id} by {self.name}"
