"""Unit tests for ContractOrchestrator.

Covers:
- Pack ordering: summary review unlocks agreement, agreement unlocks delivery, ...
- Signature packs need a ready payment.
- Starting an in-progress pack reuses its signing session.
- Completion from webhook and poll is applied once, whichever comes first.
- Completing every signature pack signs the contract and confirms the build.
- Failed submissions and collaborator outages.
"""

from __future__ import annotations

import pytest

from modules.builds.constants import BuildStatus, CheckoutStep
from modules.builds.exceptions import BuildNotFound, CheckoutRequirementMissing
from modules.contracts.constants import CompletionSource, ContractPackId, PackStatus
from modules.contracts.exceptions import (
    ContractPackLocked,
    SigningSessionError,
    UnknownContractPack,
)
from modules.contracts.models import ContractPack
from modules.core.models import OutboxEvent

pytestmark = pytest.mark.unit


@pytest.fixture()
def ready_build(make_build, make_ready_payment):
    build = make_build(step=CheckoutStep.PAYMENT_METHOD)
    make_ready_payment(build)
    return build


def _sign_pack(orchestrator, fake_esign, build, owner_id, pack, source=CompletionSource.WEBHOOK):
    session = orchestrator.start_pack(str(build.id), owner_id, pack)
    assert orchestrator.record_completion(build.id, pack, source)
    return session


# ---------------------------------------------------------------------------
# Create / status
# ---------------------------------------------------------------------------


class TestCreate:
    def test_moves_build_to_contract_and_lays_out_packs(self, orchestrator, ready_build, owner_id):
        snapshot = orchestrator.create(str(ready_build.id), owner_id)

        assert snapshot["step"] == CheckoutStep.CONTRACT
        assert snapshot["packs"] == {
            "summary": PackStatus.NOT_STARTED,
            "agreement": PackStatus.NOT_STARTED,
            "delivery": PackStatus.NOT_STARTED,
            "final": PackStatus.NOT_STARTED,
        }
        assert snapshot["current_pack"] == ContractPackId.SUMMARY
        assert ContractPack.objects.filter(build=ready_build).count() == 4

    def test_requires_ready_payment(self, orchestrator, build, owner_id):
        with pytest.raises(CheckoutRequirementMissing):
            orchestrator.create(str(build.id), owner_id)

    def test_create_twice_keeps_one_row_per_pack(self, orchestrator, ready_build, owner_id):
        orchestrator.create(str(ready_build.id), owner_id)
        orchestrator.create(str(ready_build.id), owner_id)
        assert ContractPack.objects.filter(build=ready_build).count() == 4

    def test_status_of_foreign_build(self, orchestrator, ready_build):
        with pytest.raises(BuildNotFound):
            orchestrator.status(str(ready_build.id), "someone-else")


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


class TestOrdering:
    def test_agreement_locked_until_summary_reviewed(
        self, orchestrator, fake_esign, ready_build, owner_id
    ):
        with pytest.raises(ContractPackLocked) as exc_info:
            orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)
        assert exc_info.value.code == "pack_locked"
        assert fake_esign.created == []

    def test_summary_review_is_idempotent(self, orchestrator, ready_build, owner_id):
        first = orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        second = orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        assert first["packs"]["summary"] == second["packs"]["summary"] == PackStatus.REVIEWED
        assert second["current_pack"] == ContractPackId.AGREEMENT

    def test_delivery_locked_until_agreement_completed(
        self, orchestrator, fake_esign, ready_build, owner_id
    ):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)

        with pytest.raises(ContractPackLocked):
            orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.DELIVERY)

    def test_final_locked_until_delivery_completed(
        self, orchestrator, fake_esign, ready_build, owner_id
    ):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        _sign_pack(orchestrator, fake_esign, ready_build, owner_id, ContractPackId.AGREEMENT)
        with pytest.raises(ContractPackLocked):
            orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.FINAL)

    def test_payment_must_be_ready(self, orchestrator, build, owner_id, make_ready_payment):
        make_ready_payment(build, ready=False)
        orchestrator.mark_summary_reviewed(str(build.id), owner_id)
        with pytest.raises(ContractPackLocked) as exc_info:
            orchestrator.start_pack(str(build.id), owner_id, ContractPackId.AGREEMENT)
        assert exc_info.value.code == "payment_not_ready"

    @pytest.mark.parametrize("pack", ["summary", "addendum"])
    def test_unknown_signature_pack(self, orchestrator, ready_build, owner_id, pack):
        with pytest.raises(UnknownContractPack):
            orchestrator.start_pack(str(ready_build.id), owner_id, pack)

    def test_completion_cannot_skip_ahead(self, orchestrator, ready_build):
        assert orchestrator.record_completion(
            ready_build.id, ContractPackId.FINAL, CompletionSource.WEBHOOK
        ) is False
        pack = ContractPack.objects.get(build=ready_build, pack=ContractPackId.FINAL)
        assert pack.status == PackStatus.NOT_STARTED


# ---------------------------------------------------------------------------
# Signing sessions
# ---------------------------------------------------------------------------


class TestStartPack:
    def test_creates_submission_with_prefill(self, orchestrator, fake_esign, ready_build, owner_id):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        session = orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)

        assert session["status"] == PackStatus.IN_PROGRESS
        assert session["reused"] is False
        assert session["signing_url"].startswith("https://sign.test/")
        created = fake_esign.created[0]
        assert created["template_id"] == "1001"
        assert created["prefill"]["price_total"] == "$961.56"
        assert created["prefill"]["buyer_full_name"] == "Avery Jordan"
        assert created["submitters"][0] == {
            "role": "buyer",
            "email": "avery@example.com",
            "name": "Avery Jordan",
        }
        assert created["metadata"] == {"build_id": str(ready_build.id), "pack": "agreement"}

    def test_in_progress_pack_reuses_session(self, orchestrator, fake_esign, ready_build, owner_id):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        first = orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)
        second = orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)

        assert second["reused"] is True
        assert second["signing_url"] == first["signing_url"]
        assert len(fake_esign.created) == 1

    def test_completed_pack_cannot_restart(self, orchestrator, fake_esign, ready_build, owner_id):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        _sign_pack(orchestrator, fake_esign, ready_build, owner_id, ContractPackId.AGREEMENT)
        with pytest.raises(ContractPackLocked) as exc_info:
            orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)
        assert exc_info.value.code == "pack_completed"

    def test_collaborator_failure_changes_nothing(
        self, orchestrator, fake_esign, ready_build, owner_id
    ):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        fake_esign.fail_create = True
        with pytest.raises(SigningSessionError):
            orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)
        pack = ContractPack.objects.get(build=ready_build, pack=ContractPackId.AGREEMENT)
        assert pack.status == PackStatus.NOT_STARTED

    def test_delivery_uses_delivery_template(self, orchestrator, fake_esign, ready_build, owner_id):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        _sign_pack(orchestrator, fake_esign, ready_build, owner_id, ContractPackId.AGREEMENT)
        orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.DELIVERY)

        created = fake_esign.created[-1]
        assert created["template_id"] == "1002"
        assert created["submitters"][0]["role"] == "Buyer"
        assert created["prefill"]["factory_address"]
        assert created["prefill"]["delivery_address"].startswith("1200 Main St")


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


class TestCompletion:
    def test_first_signal_wins(self, orchestrator, fake_esign, ready_build, owner_id):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        session = orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)

        fake_esign.complete(session["submission_id"])
        snapshot = orchestrator.status(str(ready_build.id), owner_id)
        assert snapshot["packs"]["agreement"] == PackStatus.COMPLETED

        applied = orchestrator.record_submission_event(session["submission_id"], "form.completed")
        assert applied is False

        pack = ContractPack.objects.get(build=ready_build, pack=ContractPackId.AGREEMENT)
        assert pack.completion_source == CompletionSource.POLL
        assert pack.signed_document_url.endswith(".pdf")
        assert (
            OutboxEvent.objects.filter(event_type="ContractPackCompleted").count() == 1
        )

    def test_webhook_then_poll(self, orchestrator, fake_esign, ready_build, owner_id):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        session = orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)

        assert orchestrator.record_submission_event(session["submission_id"], "form.completed")
        fake_esign.complete(session["submission_id"])
        assert orchestrator.refresh_status(ready_build) == 0

        pack = ContractPack.objects.get(build=ready_build, pack=ContractPackId.AGREEMENT)
        assert pack.completion_source == CompletionSource.WEBHOOK

    def test_status_without_refresh_does_not_poll(
        self, orchestrator, fake_esign, ready_build, owner_id
    ):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)
        orchestrator.status(str(ready_build.id), owner_id, refresh=False)
        assert fake_esign.lookups == []

    def test_all_packs_sign_the_contract(self, orchestrator, fake_esign, ready_build, owner_id):
        orchestrator.create(str(ready_build.id), owner_id)
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        for pack in (ContractPackId.AGREEMENT, ContractPackId.DELIVERY, ContractPackId.FINAL):
            _sign_pack(orchestrator, fake_esign, ready_build, owner_id, pack)

        ready_build.refresh_from_db()
        assert ready_build.contract_signed is True
        assert ready_build.step == CheckoutStep.CONFIRMATION
        assert ready_build.status == BuildStatus.CONFIRMED
        snapshot = orchestrator.status(str(ready_build.id), owner_id)
        assert snapshot["signed"] is True
        assert snapshot["current_pack"] is None
        assert OutboxEvent.objects.filter(event_type="ContractSigned").count() == 1

    def test_unmatched_submission(self, orchestrator):
        assert orchestrator.record_submission_event("999", "form.completed") is False

    def test_declined_submission_fails_pack(self, orchestrator, fake_esign, ready_build, owner_id):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        session = orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)

        assert orchestrator.record_submission_event(session["submission_id"], "form.declined")

        pack = ContractPack.objects.get(build=ready_build, pack=ContractPackId.AGREEMENT)
        assert pack.status == PackStatus.FAILED
        assert pack.signing_url == ""

        restarted = orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)
        assert restarted["reused"] is False
        assert restarted["submission_id"] != session["submission_id"]


class TestPolling:
    def test_poll_in_progress(self, orchestrator, fake_esign, make_build, make_ready_payment, owner_id):
        builds = []
        for _ in range(2):
            build = make_build()
            make_ready_payment(build)
            orchestrator.mark_summary_reviewed(str(build.id), owner_id)
            builds.append((build, orchestrator.start_pack(str(build.id), owner_id, "agreement")))
        fake_esign.complete(builds[0][1]["submission_id"])

        assert orchestrator.poll_in_progress() == {"checked": 2, "completed": 1}

    def test_poll_failure_is_left_for_next_round(
        self, orchestrator, fake_esign, ready_build, owner_id
    ):
        orchestrator.mark_summary_reviewed(str(ready_build.id), owner_id)
        orchestrator.start_pack(str(ready_build.id), owner_id, ContractPackId.AGREEMENT)
        fake_esign.fail_get = True

        assert orchestrator.poll_in_progress() == {"checked": 1, "completed": 0}
        pack = ContractPack.objects.get(build=ready_build, pack=ContractPackId.AGREEMENT)
        assert pack.status == PackStatus.IN_PROGRESS
