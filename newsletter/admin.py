from django.contrib import admin

from .models import NewsletterSubscriber


@admin.register(NewsletterSubscriber)
class NewsletterSubscriberAdmin(admin.ModelAdmin):
    list_display = ('email', 'status', 'subscribed_at', 'unsubscribed_at')
    list_filter = ('status',)
    search_fields = ('email',)
