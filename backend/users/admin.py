from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("username", "email", "member_id", "membership_tier", "points_balance", "is_staff")
    readonly_fields = ("member_id", "points_balance")
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Contact", {"fields": ("phone", "birth_date", "stripe_customer_id")}),
        (
            "Membership",
            {"fields": ("member_id", "membership_tier", "membership_status", "points_balance")},
        ),
    )
