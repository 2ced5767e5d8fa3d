from django.apps import AppConfig


class ContractsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.contracts"
    label = "contracts"

    def ready(self) -> None:
        from modules.contracts.events import ContractPackCompleted, ContractSigned
        from modules.contracts.handlers import (
            contract_pack_completed_handler,
            contract_signed_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(ContractPackCompleted, contract_pack_completed_handler)
        event_bus.subscribe(ContractSigned, contract_signed_handler)
