# clients/admin.py

from django.contrib import admin

from clients.models import Client


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "phone", "discount_percent", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "phone")
