"""Settings URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.storefront_settings.views import AdminSettingsView, PublicSettingsView

urlpatterns = [
    path("settings", PublicSettingsView.as_view(), name="public-settings"),
    path("admin/settings", AdminSettingsView.as_view(), name="admin-settings"),
]
