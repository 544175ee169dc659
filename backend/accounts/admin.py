from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for riders and drivers"""

    list_display = [
        "username",
        "email",
        "role",
        "phone_number",
        "rating",
        "is_active",
    ]

    list_filter = [
        "role",
        "is_active",
        "date_joined",
    ]

    search_fields = [
        "username",
        "email",
        "phone_number",
    ]

    ordering = ("username",)

    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Rider / Driver Info",
            {
                "fields": (
                    "role",
                    "phone_number",
                    "profile_picture",
                    "rating",
                )
            },
        ),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (
            "Rider / Driver Info",
            {
                "fields": (
                    "role",
                    "phone_number",
                )
            },
        ),
    )
