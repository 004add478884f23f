from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User, Address, UserPreferences

if admin.site.is_registered(User):
    admin.site.unregister(User)


class AddressInline(admin.TabularInline):
    model = Address
    extra = 0


class UserPreferencesInline(admin.StackedInline):
    model = UserPreferences
    can_delete = False
    verbose_name_plural = 'Preferences'


class CustomUserAdmin(UserAdmin):
    model = User
    list_display = ['username', 'email', 'role', 'status', 'is_staff', 'phone']
    list_filter = UserAdmin.list_filter + ('role', 'status')
    inlines = [UserPreferencesInline, AddressInline]

    fieldsets = UserAdmin.fieldsets + (
        ('Role & Contact', {'fields': ('role', 'status', 'status_reason', 'phone')}),
    )


admin.site.register(User, CustomUserAdmin)
admin.site.register(Address)
