"""Database models for users, their addresses and preferences."""

from django.contrib.auth.models import AbstractUser
from django.db import models, transaction


class User(AbstractUser):
    """Custom user model.

    Extends Django's :class:`~django.contrib.auth.models.AbstractUser` with:
    - ``role`` to separate admin, staff and customer flows
    - an account ``status`` that admins can suspend
    - optional ``phone``
    """

    ROLE_ADMIN = 'admin'
    ROLE_PRODUCT_MANAGER = 'product_manager'
    ROLE_ORDER_MANAGER = 'order_manager'
    ROLE_SUPPORT_AGENT = 'support_agent'
    ROLE_CUSTOMER = 'customer'
    ROLE_CHOICES = (
        (ROLE_ADMIN, 'Admin'),
        (ROLE_PRODUCT_MANAGER, 'Product manager'),
        (ROLE_ORDER_MANAGER, 'Order manager'),
        (ROLE_SUPPORT_AGENT, 'Support agent'),
        (ROLE_CUSTOMER, 'Customer'),
    )

    STATUS_ACTIVE = 'active'
    STATUS_SUSPENDED = 'suspended'
    STATUS_PENDING = 'pending_verification'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_SUSPENDED, 'Suspended'),
        (STATUS_PENDING, 'Pending verification'),
    )

    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=20, null=True, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_CUSTOMER)
    status = models.CharField(max_length=25, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    status_reason = models.CharField(max_length=255, null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=['role'], name='accounts_us_role_4c3c0d_idx'),
            models.Index(fields=['status'], name='accounts_us_status_1f2a9e_idx'),
            models.Index(fields=['date_joined'], name='accounts_us_date_jo_8b7d51_idx'),
        ]

    def __str__(self):
        return self.username

    @property
    def is_admin_user(self):
        return self.is_superuser or self.role == self.ROLE_ADMIN

    def set_status(self, status, reason=None):
        """Change account status; suspended accounts can no longer log in."""
        self.status = status
        if reason:
            self.status_reason = reason
        self.is_active = status != self.STATUS_SUSPENDED
        self.save(update_fields=['status', 'status_reason', 'is_active'])

    def get_default_address(self, address_type):
        qs = self.addresses.filter(type=address_type)
        return qs.filter(is_default=True).first() or qs.first()

    def add_address(self, **fields):
        """Add an address; the first of its type, or an explicit default, becomes the default."""
        address_type = fields['type']
        with transaction.atomic():
            siblings = self.addresses.select_for_update().filter(type=address_type)
            if not siblings.exists():
                fields['is_default'] = True
            if fields.get('is_default'):
                siblings.update(is_default=False)
            return Address.objects.create(user=self, **fields)

    def update_address(self, address, **fields):
        with transaction.atomic():
            if fields.get('is_default'):
                self.addresses.filter(type=address.type).exclude(pk=address.pk).update(is_default=False)
            for name, value in fields.items():
                setattr(address, name, value)
            address.save()
            return address

    def delete_address(self, address):
        """Delete an address and promote another of the same type when it was the default."""
        with transaction.atomic():
            was_default = address.is_default
            address_type = address.type
            address.delete()
            if was_default:
                nxt = self.addresses.filter(type=address_type).order_by('id').first()
                if nxt:
                    nxt.is_default = True
                    nxt.save(update_fields=['is_default'])

    def set_default_address(self, address):
        with transaction.atomic():
            self.addresses.filter(type=address.type).update(is_default=False)
            address.is_default = True
            address.save(update_fields=['is_default'])


class Address(models.Model):
    """Postal address owned by one user, typed shipping or billing."""

    TYPE_SHIPPING = 'shipping'
    TYPE_BILLING = 'billing'
    TYPE_CHOICES = (
        (TYPE_SHIPPING, 'Shipping'),
        (TYPE_BILLING, 'Billing'),
    )

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='addresses')
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    is_default = models.BooleanField(default=False)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    address = models.CharField(max_length=255)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    postal_code = models.CharField(max_length=20)
    country = models.CharField(max_length=100)
    phone = models.CharField(max_length=20, null=True, blank=True)
    company = models.CharField(max_length=255, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Address"
        verbose_name_plural = "Addresses"
        ordering = ['id']

    def __str__(self):
        return f"{self.address}, {self.city} ({self.type})"


class UserPreferences(models.Model):
    """Notification and display preferences, one row per user."""

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='preferences')
    newsletter = models.BooleanField(default=True)
    marketing = models.BooleanField(default=False)
    language = models.CharField(max_length=10, default='en')
    currency = models.CharField(max_length=3, default='CAD')
    timezone = models.CharField(max_length=64, default='America/Toronto')

    class Meta:
        verbose_name_plural = "User preferences"

    def __str__(self):
        return f"Preferences of {self.user.username}"
