"""Event handlers for Contracts domain events."""

from __future__ import annotations

import structlog

from modules.contracts.events import ContractPackCompleted, ContractSigned
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class ContractPackCompletedHandler(IEventHandler[ContractPackCompleted]):
    def handle(self, event: ContractPackCompleted) -> None:
        logger.info(
            "contract.pack_completed_event",
            build_id=str(event.aggregate_id),
            pack=event.pack,
            source=event.source,
        )


class ContractSignedHandler(IEventHandler[ContractSigned]):
    def handle(self, event: ContractSigned) -> None:
        logger.info("contract.signed_event", build_id=str(event.aggregate_id))


contract_pack_completed_handler = ContractPackCompletedHandler()
contract_signed_handler = ContractSignedHandler()
