from django.db import models
from django.utils import timezone


class NewsletterSubscriber(models.Model):
    STATUS_SUBSCRIBED = 'subscribed'
    STATUS_UNSUBSCRIBED = 'unsubscribed'
    STATUS_CHOICES = (
        (STATUS_SUBSCRIBED, 'Subscribed'),
        (STATUS_UNSUBSCRIBED, 'Unsubscribed'),
    )

    email = models.EmailField(unique=True)
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default=STATUS_SUBSCRIBED)
    subscribed_at = models.DateTimeField(default=timezone.now)
    unsubscribed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.email

    def save(self, *args, **kwargs):
        self.email = self.email.strip().lower()
        if self.status == self.STATUS_UNSUBSCRIBED and self.unsubscribed_at is None:
            self.unsubscribed_at = timezone.now()
        elif self.status == self.STATUS_SUBSCRIBED:
            self.unsubscribed_at = None
        super().save(*args, **kwargs)
