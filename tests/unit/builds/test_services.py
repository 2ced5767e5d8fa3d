"""Unit tests for BuildService.

Covers:
- Creation: first build is primary, outbox event recorded.
- Checkout step is monotonic: lower targets leave it unchanged.
- Step prerequisites: buyer info (5), ready payment (7), signed contract (8).
- Owner scoping: another owner's build is not found.
- Duplicate, rename, set_primary.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from django.utils import timezone

from modules.builds.constants import BuildStatus, CheckoutStep
from modules.builds.dtos import BuyerInfoDTO, CreateBuildDTO, UpdateBuildDTO
from modules.builds.exceptions import (
    BuildNotFound,
    BuildPricingLocked,
    CheckoutRequirementMissing,
    InvalidCheckoutStep,
)
from modules.builds.models import Build
from modules.core.models import OutboxEvent
from modules.pricing.dtos import OptionLine

pytestmark = pytest.mark.unit


def _create_dto(owner_id: str, **overrides) -> CreateBuildDTO:
    data = {
        "owner_id": owner_id,
        "model_slug": "willow",
        "model_name": "The Willow",
        "name": "Lake house",
        "base_price_cents": Decimal("64500"),
        "options": [OptionLine(id="loft", name="Sleeping loft", price=Decimal("3500"))],
        "delivery_fee_cents": Decimal("1500"),
    }
    data.update(overrides)
    return CreateBuildDTO(**data)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestCreateBuild:
    def test_first_build_is_primary(self, build_service, owner_id):
        first = build_service.create_build(_create_dto(owner_id))
        second = build_service.create_build(_create_dto(owner_id, name="Second"))

        assert first.primary is True
        assert second.primary is False
        assert first.step == CheckoutStep.CHOOSE_HOME
        assert first.status == BuildStatus.DRAFT

    def test_options_stored_as_json(self, build_service, owner_id):
        build = build_service.create_build(_create_dto(owner_id))
        build.refresh_from_db()
        assert build.options[0]["id"] == "loft"
        assert Decimal(build.options[0]["price"]) == Decimal("3500")

    def test_records_outbox_event(self, build_service, owner_id):
        build = build_service.create_build(_create_dto(owner_id))
        assert OutboxEvent.objects.filter(
            aggregate_id=str(build.id), event_type="BuildCreated"
        ).exists()


class TestOwnership:
    def test_other_owner_gets_not_found(self, build_service, build):
        with pytest.raises(BuildNotFound):
            build_service.get_build(str(build.id), "someone-else")

    def test_delete_removes_build(self, build_service, build, owner_id):
        build_service.delete_build(str(build.id), owner_id)
        assert not Build.objects.filter(pk=build.pk).exists()


class TestUpdateBuild:
    def test_buyer_info_is_merged(self, build_service, build, owner_id):
        updated = build_service.update_build(
            str(build.id),
            owner_id,
            UpdateBuildDTO(buyer_info=BuyerInfoDTO(phone="512-555-0199")),
        )
        assert updated.buyer_info["phone"] == "512-555-0199"
        assert updated.buyer_info["first_name"] == "Avery"

    def test_price_can_change_before_payment_selection(self, build_service, build, owner_id):
        updated = build_service.update_build(
            str(build.id), owner_id, UpdateBuildDTO(delivery_fee_cents=Decimal("2500"))
        )
        assert updated.delivery_fee_cents == Decimal("2500")

    def test_price_is_locked_after_payment_selection(
        self, build_service, make_build, make_ready_payment, owner_id
    ):
        build = make_build(step=CheckoutStep.PAYMENT_METHOD)
        make_ready_payment(build)
        before = build_service.summary(str(build.id), owner_id).total

        with pytest.raises(BuildPricingLocked):
            build_service.update_build(
                str(build.id),
                owner_id,
                UpdateBuildDTO(
                    options=[OptionLine(id="porch", name="Covered porch", price=Decimal("1000"))]
                ),
            )

        assert build_service.summary(str(build.id), owner_id).total == before

    def test_buyer_info_stays_editable_after_payment_selection(
        self, build_service, make_build, make_ready_payment, owner_id
    ):
        build = make_build(step=CheckoutStep.PAYMENT_METHOD)
        make_ready_payment(build)

        updated = build_service.update_build(
            str(build.id), owner_id, UpdateBuildDTO(name="Final cabin")
        )
        assert updated.name == "Final cabin"


class TestBuildManagement:
    def test_duplicate_resets_checkout_state(self, build_service, make_build, owner_id):
        original = make_build(step=CheckoutStep.CONTRACT, status=BuildStatus.CHECKOUT)
        copy = build_service.duplicate_build(str(original.id), owner_id)

        assert copy.id != original.id
        assert copy.step == CheckoutStep.CHOOSE_HOME
        assert copy.status == BuildStatus.DRAFT
        assert copy.version == 2
        assert copy.name == "My Magnolia (v2)"
        assert copy.options == original.options

    def test_rename_trims(self, build_service, build, owner_id):
        renamed = build_service.rename_build(str(build.id), owner_id, "  Cabin  ")
        assert renamed.name == "Cabin"

    def test_only_one_primary(self, build_service, make_build, owner_id):
        a = make_build(primary=True)
        b = make_build()
        build_service.set_primary(str(b.id), owner_id)
        a.refresh_from_db()
        b.refresh_from_db()
        assert a.primary is False
        assert b.primary is True


# ---------------------------------------------------------------------------
# Checkout progress
# ---------------------------------------------------------------------------


class TestAdvanceStep:
    def test_moves_forward(self, build_service, make_build, owner_id):
        build = make_build(step=CheckoutStep.DELIVERY_ADDRESS)
        advanced = build_service.advance_step(str(build.id), CheckoutStep.OVERVIEW, owner_id)
        assert advanced.step == CheckoutStep.OVERVIEW
        assert advanced.status == BuildStatus.CHECKOUT

    def test_lower_target_is_a_no_op(self, build_service, make_build, owner_id):
        build = make_build(step=CheckoutStep.PAYMENT_METHOD)
        result = build_service.advance_step(str(build.id), CheckoutStep.CUSTOMIZE, owner_id)
        build.refresh_from_db()
        assert result.step == CheckoutStep.PAYMENT_METHOD
        assert build.step == CheckoutStep.PAYMENT_METHOD

    def test_step_never_decreases_over_a_sequence(self, build_service, make_build, owner_id):
        build = make_build(step=CheckoutStep.CHOOSE_HOME)
        seen = []
        for target in (2, 4, 3, 1, 5, 2, 6):
            seen.append(build_service.advance_step(str(build.id), target, owner_id).step)
        assert seen == sorted(seen)
        assert seen[-1] == CheckoutStep.PAYMENT_METHOD

    @pytest.mark.parametrize("target", [0, 9, "seven", None])
    def test_invalid_target(self, build_service, build, owner_id, target):
        with pytest.raises(InvalidCheckoutStep):
            build_service.advance_step(str(build.id), target, owner_id)

    def test_overview_requires_buyer_info(self, build_service, make_build, owner_id):
        build = make_build(step=CheckoutStep.DELIVERY_ADDRESS, buyer_info={"first_name": "Avery"})
        with pytest.raises(CheckoutRequirementMissing) as exc_info:
            build_service.advance_step(str(build.id), CheckoutStep.OVERVIEW, owner_id)
        assert exc_info.value.code == "incomplete_buyer"

    def test_contract_requires_payment_method(self, build_service, build, owner_id):
        with pytest.raises(CheckoutRequirementMissing) as exc_info:
            build_service.advance_step(str(build.id), CheckoutStep.CONTRACT, owner_id)
        assert exc_info.value.code == "missing_payment_method"

    def test_contract_requires_ready_payment(
        self, build_service, build, owner_id, make_ready_payment
    ):
        make_ready_payment(build, ready=False)
        with pytest.raises(CheckoutRequirementMissing) as exc_info:
            build_service.advance_step(str(build.id), CheckoutStep.CONTRACT, owner_id)
        assert exc_info.value.code == "payment_not_ready"

    def test_contract_with_ready_payment(self, build_service, build, owner_id, make_ready_payment):
        make_ready_payment(build)
        advanced = build_service.advance_step(str(build.id), CheckoutStep.CONTRACT, owner_id)
        assert advanced.step == CheckoutStep.CONTRACT

    def test_confirmation_requires_signed_contract(
        self, build_service, make_build, owner_id, make_ready_payment
    ):
        build = make_build(step=CheckoutStep.CONTRACT)
        make_ready_payment(build)
        with pytest.raises(CheckoutRequirementMissing) as exc_info:
            build_service.advance_step(str(build.id), CheckoutStep.CONFIRMATION, owner_id)
        assert exc_info.value.code == "contract_not_signed"

        Build.objects.filter(pk=build.pk).update(contract_signed_at=timezone.now())
        confirmed = build_service.advance_step(str(build.id), CheckoutStep.CONFIRMATION, owner_id)
        assert confirmed.step == CheckoutStep.CONFIRMATION
        assert confirmed.status == BuildStatus.CONFIRMED

    def test_step_change_is_recorded_in_outbox(self, build_service, make_build, owner_id):
        build = make_build(step=CheckoutStep.DELIVERY_ADDRESS)
        build_service.advance_step(str(build.id), CheckoutStep.OVERVIEW, owner_id)
        event = OutboxEvent.objects.get(aggregate_id=str(build.id), event_type="BuildStepAdvanced")
        assert event.payload["step"] == CheckoutStep.OVERVIEW
        assert event.topic == "builds"


class TestSummary:
    def test_summary_prices_the_build(self, build_service, build, owner_id):
        summary = build_service.summary(str(build.id), owner_id)
        assert summary.total == Decimal("96156.25")
