"""Append-only audit trail of customer and admin actions."""

from django.conf import settings
from django.db import models


class ActivityLog(models.Model):
    """One audited action. Rows are only ever inserted."""

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='activity_logs')
    action = models.CharField(max_length=64)
    description = models.TextField()
    target_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='activity_user_created_idx'),
            models.Index(fields=['action', 'created_at'], name='activity_action_created_idx'),
        ]

    def __str__(self):
        return f"{self.action} by {self.user_id} at {self.created_at:%Y-%m-%d %H:%M}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError('Activity log entries are append-only.')
        super().save(*args, **kwargs)
