"""Payment repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from modules.core.repositories.interfaces import IRepository, Queryable

if TYPE_CHECKING:
    from modules.builds.models import Build
    from modules.payments.models import BankTransferIntent, BuildPayment


class IPaymentRepository(IRepository["BuildPayment"]):
    @abstractmethod
    def get_or_create_for_build(self, build: Build) -> BuildPayment:
        """Row-locked payment record of ``build``, created on first use."""

    @abstractmethod
    def get_for_build(self, build_id: Any) -> Optional[BuildPayment]:
        """Row-locked, like the two lookups below; call inside a transaction."""

    @abstractmethod
    def get_by_setup_intent(self, setup_intent_id: str) -> Optional[BuildPayment]: ...

    @abstractmethod
    def get_by_virtual_account(self, virtual_account_id: str) -> Optional[BuildPayment]: ...

    @abstractmethod
    def list_ready(self, methods: Iterable[str]) -> Queryable[BuildPayment]:
        """Ready payments using one of ``methods``."""

    @abstractmethod
    def replace_transfer_intents(
        self, payment: BuildPayment, intents: List[Dict[str, Any]], created_by: str
    ) -> List[BankTransferIntent]:
        """Drop existing transfer intents of ``payment`` and create ``intents``."""
