"""Signals for user side-effects (default preferences row)."""

from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import User, UserPreferences


@receiver(post_save, sender=User)
def create_user_preferences(sender, instance, created, **kwargs):
    """Every new user starts with default preferences."""
    if created:
        UserPreferences.objects.get_or_create(user=instance)
