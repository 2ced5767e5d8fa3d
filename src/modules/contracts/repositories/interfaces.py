"""Contract pack repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Optional

from modules.core.repositories.interfaces import IRepository, Queryable

if TYPE_CHECKING:
    from modules.builds.models import Build
    from modules.contracts.models import ContractPack


class IContractRepository(IRepository["ContractPack"]):
    @abstractmethod
    def packs_for_build(self, build: Build, lock: bool = False) -> Dict[str, ContractPack]:
        """Every pack of ``build`` keyed by pack id, created on first use."""

    @abstractmethod
    def get_by_submission(self, submission_id: str) -> Optional[ContractPack]: ...

    @abstractmethod
    def list_in_progress(self) -> Queryable[ContractPack]: ...
