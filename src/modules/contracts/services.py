"""Contract Orchestrator (Use Cases).

Packs run ``summary -> agreement -> delivery -> final``.  A pack opens
only once the one before it holds its unlocking status (``reviewed`` for
the summary, ``completed`` otherwise), and no signature pack opens before
the build's payment is ready.

Completion has two producers, the DocuSeal webhook and status polling
(the buyer's signing window also triggers a poll when it reports back).
Both feed ``record_completion``, which locks the pack row and treats a
second completion as a no-op, so whichever signal lands first wins and
nothing is processed twice.  Completing the last signature pack signs the
contract and moves the build to the confirmation step.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import structlog
from django.db import transaction
from django.utils import timezone

from modules.builds.constants import BuildStatus, CheckoutStep
from modules.builds.exceptions import BuildNotFound, CheckoutRequirementMissing
from modules.contracts.constants import (
    PACK_ORDER,
    PACK_TEMPLATES,
    SIGNATURE_PACKS,
    SUBMISSION_COMPLETED,
    SUBMISSION_FAILED,
    TEMPLATE_ROLES,
    UNLOCKING_STATUS,
    CompletionSource,
    ContractPackId,
    PackStatus,
)
from modules.contracts.events import ContractPackCompleted, ContractPackStarted, ContractSigned
from modules.contracts.exceptions import (
    ContractPackLocked,
    SigningSessionError,
    UnknownContractPack,
)
from modules.contracts.prefill import build_prefill

if TYPE_CHECKING:
    from modules.builds.models import Build
    from modules.builds.repositories.interfaces import IBuildRepository
    from modules.builds.services import BuildService
    from modules.contracts.esign import IESignatureClient
    from modules.contracts.models import ContractPack
    from modules.contracts.repositories.interfaces import IContractRepository
    from modules.storefront_settings.services import SettingsProvider

logger = structlog.get_logger(__name__)


class ContractOrchestrator:
    """Application service for the contract phase of checkout.

    ``template_ids`` maps DocuSeal template keys (``masterRetail``,
    ``delivery``) to template ids.
    """

    def __init__(
        self,
        build_repository: IBuildRepository,
        contract_repository: IContractRepository,
        esign_client: IESignatureClient,
        settings_provider: SettingsProvider,
        build_service: BuildService,
        template_ids: Mapping[str, str],
    ) -> None:
        self._build_repo = build_repository
        self._contract_repo = contract_repository
        self._esign = esign_client
        self._settings = settings_provider
        self._build_service = build_service
        self._template_ids = template_ids

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, build_id: str, owner_id: str, refresh: bool = True) -> Dict[str, Any]:
        """Pack status map of a build, polling in-progress packs first."""
        build = self._get_owned(build_id, owner_id)
        if refresh:
            self.refresh_status(build)
            build = self._get_owned(build_id, owner_id)
        return self._snapshot(build, self._contract_repo.packs_for_build(build))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, build_id: str, owner_id: str) -> Dict[str, Any]:
        """Open the contract phase: move the build to the contract step and lay out its packs."""
        build = self._build_service.advance_step(build_id, CheckoutStep.CONTRACT, owner_id=owner_id)
        packs = self._contract_repo.packs_for_build(build, lock=True)
        logger.info("contract.created", build_id=build_id)
        return self._snapshot(build, packs)

    @transaction.atomic
    def mark_summary_reviewed(self, build_id: str, owner_id: str) -> Dict[str, Any]:
        build = self._load(build_id, owner_id)
        packs = self._contract_repo.packs_for_build(build, lock=True)
        summary = packs[ContractPackId.SUMMARY]
        if summary.status == PackStatus.NOT_STARTED:
            summary.status = PackStatus.REVIEWED
            summary.reviewed_at = timezone.now()
            self._contract_repo.save(summary)
            logger.info("contract.summary_reviewed", build_id=build_id)
        return self._snapshot(build, packs)

    @transaction.atomic
    def start_pack(self, build_id: str, owner_id: str, pack: str) -> Dict[str, Any]:
        """Request (or reuse) a signing session for ``pack``.

        Raises:
            UnknownContractPack: ``pack`` is not a signature pack.
            ContractPackLocked: payment not ready, a previous pack is
                unfinished, or ``pack`` is already completed.
            SigningSessionError: DocuSeal failed; nothing was changed.
        """
        if pack not in SIGNATURE_PACKS:
            raise UnknownContractPack(f"Unknown contract pack {pack!r}.")
        build = self._load(build_id, owner_id)
        if not build.payment_ready:
            raise ContractPackLocked(
                "payment_not_ready", "Finish setting up your payment method first."
            )
        packs = self._contract_repo.packs_for_build(build, lock=True)
        blocker = _ordering_blocker(packs, pack)
        if blocker is not None:
            raise ContractPackLocked("pack_locked", blocker)

        row = packs[pack]
        log = logger.bind(build_id=build_id, pack=pack)
        if row.status == PackStatus.COMPLETED:
            raise ContractPackLocked("pack_completed", "This document is already signed.")
        if row.status == PackStatus.IN_PROGRESS and row.signing_url:
            log.info("contract.signing_session_reused", submission_id=row.submission_id)
            return self._pack_session(row, reused=True)

        template_key = PACK_TEMPLATES[pack]
        template_id = self._template_ids.get(template_key)
        if not template_id:
            log.error("contract.template_missing", template_key=template_key)
            raise SigningSessionError(f"No DocuSeal template configured for {template_key}.")

        info = build.buyer_info or {}
        session = self._esign.create_submission(
            template_id=str(template_id),
            prefill=build_prefill(build, self._settings.get_settings(), pack),
            submitters=[
                {
                    "role": TEMPLATE_ROLES.get(template_key, "Buyer"),
                    "email": info.get("email", ""),
                    "name": build.buyer_full_name(),
                }
            ],
            metadata={"build_id": str(build.id), "pack": pack},
        )
        row.status = PackStatus.IN_PROGRESS
        row.submission_id = session.submission_id
        row.signing_url = session.signing_url
        row.started_at = timezone.now()
        row.last_error = ""
        row.add_domain_event(
            ContractPackStarted(
                aggregate_id=build.id, pack=pack, submission_id=session.submission_id
            )
        )
        self._contract_repo.save(row)
        log.info("contract.pack_started", submission_id=session.submission_id)
        return self._pack_session(row, reused=False)

    @transaction.atomic
    def record_completion(
        self,
        build_id: Any,
        pack: str,
        source: str,
        document_url: Optional[str] = None,
        audit_trail_url: Optional[str] = None,
    ) -> bool:
        """Mark ``pack`` completed.  Returns ``False`` when nothing changed.

        Only an in-progress pack can complete, so a completion can never
        skip ahead of the pack ordering.
        """
        build = self._build_repo.get_for_update(str(build_id))
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")
        packs = self._contract_repo.packs_for_build(build, lock=True)
        if pack not in packs:
            raise UnknownContractPack(f"Unknown contract pack {pack!r}.")
        row = packs[pack]
        log = logger.bind(build_id=str(build_id), pack=pack, source=source)
        if row.status == PackStatus.COMPLETED:
            log.info("contract.completion_duplicate")
            return False
        if row.status != PackStatus.IN_PROGRESS:
            log.warning("contract.completion_ignored", status=row.status)
            return False

        row.status = PackStatus.COMPLETED
        row.completed_at = timezone.now()
        row.completion_source = source
        row.signed_document_url = document_url or row.signed_document_url
        row.audit_trail_url = audit_trail_url or row.audit_trail_url
        row.add_domain_event(
            ContractPackCompleted(aggregate_id=build.id, pack=pack, source=source)
        )
        self._contract_repo.save(row)
        log.info("contract.pack_completed")

        if all(packs[p].status == PackStatus.COMPLETED for p in SIGNATURE_PACKS):
            self._sign(build)
        return True

    @transaction.atomic
    def record_failure(self, build_id: Any, pack: str, reason: str) -> bool:
        build = self._build_repo.get_for_update(str(build_id))
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")
        row = self._contract_repo.packs_for_build(build, lock=True)[pack]
        if row.status != PackStatus.IN_PROGRESS:
            return False
        row.status = PackStatus.FAILED
        row.last_error = reason[:255]
        row.signing_url = ""
        self._contract_repo.save(row)
        logger.warning("contract.pack_failed", build_id=str(build_id), pack=pack, reason=reason)
        return True

    def record_submission_event(
        self,
        submission_id: str,
        event_type: str,
        source: str = CompletionSource.WEBHOOK,
        document_url: Optional[str] = None,
        audit_trail_url: Optional[str] = None,
    ) -> bool:
        """Apply a DocuSeal submission event to the pack it belongs to."""
        row = self._contract_repo.get_by_submission(submission_id)
        if row is None:
            logger.info("contract.event_unmatched", submission_id=submission_id, event_type=event_type)
            return False
        if event_type in SUBMISSION_COMPLETED:
            return self.record_completion(
                row.build_id, row.pack, source, document_url, audit_trail_url
            )
        if event_type in SUBMISSION_FAILED:
            return self.record_failure(row.build_id, row.pack, event_type)
        logger.info("contract.event_ignored", submission_id=submission_id, event_type=event_type)
        return False

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def refresh_status(self, build: Build) -> int:
        """Poll DocuSeal for every in-progress pack of ``build``.

        Lookup failures are logged and left for the next poll.
        """
        in_progress = [
            row
            for row in self._contract_repo.packs_for_build(build).values()
            if row.status == PackStatus.IN_PROGRESS and row.submission_id
        ]
        return sum(self._poll(row) for row in in_progress)

    def poll_in_progress(self) -> Dict[str, int]:
        checked = completed = 0
        for row in self._contract_repo.list_in_progress():
            checked += 1
            completed += self._poll(row)
        logger.info("contract.poll_completed", checked=checked, completed=completed)
        return {"checked": checked, "completed": completed}

    def _poll(self, row: ContractPack) -> int:
        try:
            state = self._esign.get_submission(row.submission_id)
        except SigningSessionError:
            logger.warning(
                "contract.poll_failed",
                build_id=str(row.build_id),
                pack=row.pack,
                submission_id=row.submission_id,
            )
            return 0
        if state.completed:
            return int(
                self.record_completion(
                    row.build_id,
                    row.pack,
                    CompletionSource.POLL,
                    state.document_url,
                    state.audit_trail_url,
                )
            )
        if state.failed:
            self.record_failure(row.build_id, row.pack, state.status)
        return 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _sign(self, build: Build) -> None:
        build.contract_signed_at = timezone.now()
        build.status = BuildStatus.CONTRACT_SIGNED
        build.add_domain_event(ContractSigned(aggregate_id=build.id))
        self._build_repo.save(build)
        logger.info("contract.signed", build_id=str(build.id))
        try:
            self._build_service.advance_step(str(build.id), CheckoutStep.CONFIRMATION)
        except CheckoutRequirementMissing as exc:
            # The signature stands; the buyer is sent back to fix the gap.
            logger.warning("contract.confirmation_blocked", build_id=str(build.id), code=exc.code)

    def _get_owned(self, build_id: str, owner_id: str) -> Build:
        build = self._build_repo.get_for_owner(build_id, owner_id)
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")
        return build

    def _load(self, build_id: str, owner_id: str) -> Build:
        build = self._build_repo.get_for_update(build_id, owner_id)
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")
        return build

    @staticmethod
    def _pack_session(row: ContractPack, reused: bool) -> Dict[str, Any]:
        return {
            "pack": row.pack,
            "status": row.status,
            "submission_id": row.submission_id,
            "signing_url": row.signing_url,
            "reused": reused,
        }

    @staticmethod
    def _snapshot(build: Build, packs: Mapping[str, ContractPack]) -> Dict[str, Any]:
        current = next(
            (p for p in PACK_ORDER if _ordering_blocker(packs, p) is None and not _done(packs[p])),
            None,
        )
        return {
            "build_id": str(build.id),
            "step": build.step,
            "signed": build.contract_signed,
            "current_pack": current,
            "packs": {p: packs[p].status for p in PACK_ORDER},
            "sessions": {
                p: packs[p].signing_url
                for p in SIGNATURE_PACKS
                if packs[p].status == PackStatus.IN_PROGRESS and packs[p].signing_url
            },
        }


def _done(row: ContractPack) -> bool:
    return row.status == UNLOCKING_STATUS.get(row.pack, PackStatus.COMPLETED)


def _ordering_blocker(packs: Mapping[str, ContractPack], pack: str) -> Optional[str]:
    """Why ``pack`` cannot open yet, or ``None``."""
    index = PACK_ORDER.index(pack)
    if index == 0:
        return None
    previous = PACK_ORDER[index - 1]
    if packs[previous].status != UNLOCKING_STATUS[previous]:
        label = ContractPackId(previous).label
        return f"Complete the {label} before starting this document."
    return None
