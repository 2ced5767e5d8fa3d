from django.apps import AppConfig


class StorefrontSettingsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.storefront_settings"
    label = "storefront_settings"
