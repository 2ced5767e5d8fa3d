from django.apps import AppConfig


class BuildsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.builds"
    label = "builds"

    def ready(self) -> None:
        from modules.builds.events import BuildCreated, BuildStepAdvanced
        from modules.builds.handlers import (
            build_created_handler,
            build_step_advanced_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(BuildCreated, build_created_handler)
        event_bus.subscribe(BuildStepAdvanced, build_step_advanced_handler)
