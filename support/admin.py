from django.contrib import admin

from .models import SupportTicket


@admin.register(SupportTicket)
class SupportTicketAdmin(admin.ModelAdmin):
    list_display = ('id', 'subject', 'customer_email', 'category', 'priority', 'status', 'assigned_to', 'created_at')
    list_filter = ('status', 'priority', 'category')
    search_fields = ('subject', 'customer_name', 'customer_email')
    readonly_fields = ('created_at', 'updated_at', 'resolved_at', 'closed_at')
