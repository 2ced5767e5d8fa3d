from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.payments"
    label = "payments"

    def ready(self) -> None:
        from modules.payments.events import (
            MilestoneCharged,
            PaymentMarkedReady,
            PaymentReadinessRevoked,
        )
        from modules.payments.handlers import (
            milestone_charged_handler,
            payment_marked_ready_handler,
            payment_readiness_revoked_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(PaymentMarkedReady, payment_marked_ready_handler)
        event_bus.subscribe(PaymentReadinessRevoked, payment_readiness_revoked_handler)
        event_bus.subscribe(MilestoneCharged, milestone_charged_handler)
