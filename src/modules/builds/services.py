"""Build service layer (Use Cases).

Owns the build lifecycle and the monotonic checkout progress marker.

Step prerequisites enforced by ``advance_step``:

- step >= 5 (Overview): buyer first/last name, email and address present.
- step >= 7 (Contract): a payment method is selected and ``payment.ready``.
- step 8 (Confirmation): every signature pack is completed.

A target below the current step is accepted and leaves ``step`` unchanged.

Price inputs (model, base price, options, delivery fee) are fixed once a
payment method is selected, since the payment amounts are taken from them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import structlog
from django.db import transaction

from modules.builds.constants import (
    FIRST_STEP,
    LAST_STEP,
    BuildStatus,
    CheckoutStep,
)
from modules.builds.events import BuildCreated, BuildStepAdvanced
from modules.builds.exceptions import (
    BuildNotFound,
    BuildPricingLocked,
    CheckoutRequirementMissing,
    InvalidCheckoutStep,
)
from modules.builds.navigation import (
    NavigationDecision,
    can_navigate_to_step,
    get_step_route,
)
from modules.pricing.calculator import price_breakdown

if TYPE_CHECKING:
    from modules.builds.dtos import CreateBuildDTO, UpdateBuildDTO
    from modules.builds.models import Build
    from modules.builds.repositories.interfaces import IBuildRepository
    from modules.pricing.dtos import PriceBreakdown
    from modules.storefront_settings.services import SettingsProvider

logger = structlog.get_logger(__name__)

NAME_MAX_LENGTH = 200

# Fields that feed the pricing calculator.
PRICE_FIELDS = frozenset({"model_slug", "base_price_cents", "options", "delivery_fee_cents"})


class BuildService:
    """Application service for Build use-cases.

    Receives its repository and the settings provider via constructor
    injection.
    """

    def __init__(
        self,
        build_repository: IBuildRepository,
        settings_provider: SettingsProvider,
    ) -> None:
        self._build_repo = build_repository
        self._settings = settings_provider

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_build(self, dto: CreateBuildDTO) -> Build:
        is_first = not self._build_repo.list_for_owner(dto.owner_id).exists()
        build = self._build_repo.create(
            {
                "owner_id": dto.owner_id,
                "model_slug": dto.model_slug,
                "model_name": dto.model_name,
                "name": dto.name[:NAME_MAX_LENGTH],
                "base_price_cents": dto.base_price_cents,
                "options": [o.model_dump(mode="json") for o in dto.options],
                "delivery_fee_cents": dto.delivery_fee_cents,
                "buyer_info": dto.buyer_info.model_dump() if dto.buyer_info else {},
                "step": FIRST_STEP,
                "primary": is_first,
            }
        )
        build.add_domain_event(BuildCreated(aggregate_id=build.id))
        return self._build_repo.save(build)

    def get_build(self, build_id: str, owner_id: str) -> Build:
        build = self._build_repo.get_for_owner(build_id, owner_id)
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")
        return build

    def list_builds(self, owner_id: str):
        return self._build_repo.list_for_owner(owner_id)

    @transaction.atomic
    def update_build(self, build_id: str, owner_id: str, dto: UpdateBuildDTO) -> Build:
        build = self._build_repo.get_for_update(build_id, owner_id)
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")
        changes = dto.changes()
        locked = PRICE_FIELDS.intersection(changes)
        if locked and build.pricing_locked:
            logger.warning("build.pricing_locked", build_id=build_id, fields=sorted(locked))
            raise BuildPricingLocked(
                "The price is fixed once a payment method is chosen. Duplicate the build to change it."
            )
        if "buyer_info" in changes:
            changes["buyer_info"] = {**(build.buyer_info or {}), **changes["buyer_info"]}
        if "name" in changes:
            changes["name"] = changes["name"][:NAME_MAX_LENGTH]
        for field, value in changes.items():
            setattr(build, field, value)
        logger.info("build.updated", build_id=build_id, fields=sorted(changes))
        return self._build_repo.save(build)

    def delete_build(self, build_id: str, owner_id: str) -> None:
        build = self.get_build(build_id, owner_id)
        self._build_repo.delete(str(build.id))

    @transaction.atomic
    def duplicate_build(self, build_id: str, owner_id: str) -> Build:
        """Copy the configuration into a fresh draft (checkout state is not copied)."""
        original = self.get_build(build_id, owner_id)
        version = (original.version or 1) + 1
        base_name = original.name or original.model_name or original.model_slug or "Build"
        copy = self._build_repo.create(
            {
                "owner_id": owner_id,
                "model_slug": original.model_slug,
                "model_name": original.model_name,
                "name": f"{base_name} (v{version})"[:NAME_MAX_LENGTH],
                "version": version,
                "base_price_cents": original.base_price_cents,
                "options": list(original.options or []),
                "delivery_fee_cents": original.delivery_fee_cents,
                "buyer_info": dict(original.buyer_info or {}),
                "step": FIRST_STEP,
                "status": BuildStatus.DRAFT,
                "primary": False,
            }
        )
        copy.add_domain_event(BuildCreated(aggregate_id=copy.id))
        logger.info("build.duplicated", source_id=build_id, build_id=str(copy.id))
        return self._build_repo.save(copy)

    @transaction.atomic
    def rename_build(self, build_id: str, owner_id: str, name: str) -> Build:
        build = self._build_repo.get_for_update(build_id, owner_id)
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")
        build.name = str(name).strip()[:NAME_MAX_LENGTH]
        return self._build_repo.save(build)

    @transaction.atomic
    def set_primary(self, build_id: str, owner_id: str) -> Build:
        """Exactly one primary build per owner."""
        build = self._build_repo.get_for_update(build_id, owner_id)
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")
        cleared = self._build_repo.clear_primary(owner_id, except_id=build.id)
        build.primary = True
        logger.info("build.primary_set", build_id=build_id, cleared=cleared)
        return self._build_repo.save(build)

    # ------------------------------------------------------------------
    # Checkout progress
    # ------------------------------------------------------------------

    @transaction.atomic
    def advance_step(
        self, build_id: str, target: Any, owner_id: Optional[str] = None
    ) -> Build:
        """Move the progress marker forward to ``target`` (never backward).

        ``owner_id`` is ``None`` only for internal callers (payments,
        contracts) that already resolved an owned build.

        Raises:
            BuildNotFound: build missing or owned by someone else.
            InvalidCheckoutStep: ``target`` outside 1..8.
            CheckoutRequirementMissing: a prerequisite is not met.
        """
        try:
            target_step = int(target)
        except (TypeError, ValueError) as exc:
            raise InvalidCheckoutStep(f"Invalid step {target!r}.") from exc
        if target_step < FIRST_STEP or target_step > LAST_STEP:
            raise InvalidCheckoutStep(f"Step must be between 1 and 8, got {target_step}.")

        build = self._build_repo.get_for_update(build_id, owner_id)
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")

        log = logger.bind(build_id=build_id, current_step=build.step, target_step=target_step)

        if target_step <= build.step:
            log.info("build.step_unchanged")
            return build

        self._check_requirements(build, target_step)

        previous = build.step
        build.step = target_step
        if target_step >= CheckoutStep.OVERVIEW and build.status == BuildStatus.DRAFT:
            build.status = BuildStatus.CHECKOUT
        if target_step == CheckoutStep.CONFIRMATION:
            build.status = BuildStatus.CONFIRMED
        build.add_domain_event(
            BuildStepAdvanced(aggregate_id=build.id, previous_step=previous, step=target_step)
        )
        self._build_repo.save(build)
        log.info("build.step_advanced")
        return build

    def summary(self, build_id: str, owner_id: str) -> PriceBreakdown:
        build = self.get_build(build_id, owner_id)
        return price_breakdown(build, self._settings.get_settings())

    def navigation(
        self,
        build_id: str,
        owner_id: str,
        target: Any,
        current: Any,
        is_signed_in: bool = True,
    ) -> tuple[NavigationDecision, str]:
        build = self.get_build(build_id, owner_id)
        decision = can_navigate_to_step(target, current, is_signed_in, build)
        route = get_step_route(target, build.id, build.model_slug) if decision.can_navigate else ""
        if not decision.can_navigate:
            logger.info(
                "build.navigation_denied",
                build_id=build_id,
                target=str(target),
                reason=decision.reason,
            )
        return decision, route

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_requirements(build: Build, target_step: int) -> None:
        if target_step >= CheckoutStep.OVERVIEW:
            missing = build.missing_buyer_fields()
            if missing:
                raise CheckoutRequirementMissing(
                    "incomplete_buyer",
                    f"Buyer information is incomplete: {', '.join(missing)}.",
                )
        if target_step >= CheckoutStep.CONTRACT:
            if not build.payment_method:
                raise CheckoutRequirementMissing(
                    "missing_payment_method", "Select a payment method first."
                )
            if not build.payment_ready:
                raise CheckoutRequirementMissing(
                    "payment_not_ready", "Finish setting up your payment method first."
                )
        if target_step >= CheckoutStep.CONFIRMATION and not build.contract_signed:
            raise CheckoutRequirementMissing(
                "contract_not_signed", "Sign every contract pack first."
            )
