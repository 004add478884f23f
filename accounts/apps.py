"""Accounts app configuration and signal registration."""

from django.apps import AppConfig


class AccountsConfig(AppConfig):
    """Django app config for the accounts domain."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'accounts'

    def ready(self):
        """Import signal handlers on app ready."""
        import accounts.signals  # noqa: F401
