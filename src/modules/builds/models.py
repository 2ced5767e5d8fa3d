"""Build aggregate root.

A build is one buyer's home configuration plus its checkout state.  It is
owned by an external subject id (``owner_id``) and is only ever deleted by
its owner.  ``step`` only moves forward (see ``BuildService.advance_step``).

The payment sub-document lives in ``payments.BuildPayment`` (reverse
accessor ``build.payment``); contract packs live in
``contracts.ContractPack``.  ``contract_signed_at`` is the denormalised
"all signature packs completed" marker that gates the confirmation step.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.core.exceptions import ObjectDoesNotExist
from django.db import models

from modules.builds.constants import (
    REQUIRED_BUYER_FIELDS,
    BuildStatus,
    CheckoutStep,
)
from modules.core.models import BaseModel
from shared.domain.events import DomainEventMixin


class Build(DomainEventMixin, BaseModel):
    owner_id: models.CharField = models.CharField(max_length=255, db_index=True)
    model_slug: models.CharField = models.CharField(max_length=100)
    model_name: models.CharField = models.CharField(max_length=200, blank=True, default="")
    name: models.CharField = models.CharField(max_length=200, blank=True, default="")
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)
    base_price_cents: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0")
    )
    options: models.JSONField = models.JSONField(default=list, blank=True)
    delivery_fee_cents: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0")
    )
    buyer_info: models.JSONField = models.JSONField(default=dict, blank=True)
    step: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField(
        choices=CheckoutStep.choices,
        default=CheckoutStep.CHOOSE_HOME,
    )
    primary: models.BooleanField = models.BooleanField(default=False)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=BuildStatus.choices,
        default=BuildStatus.DRAFT,
    )
    contract_signed_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True, default=None
    )

    class Meta:
        db_table = "builds"
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["owner_id", "-updated_at"], name="builds_owner_updated_idx"),
            models.Index(fields=["status", "-updated_at"], name="builds_status_updated_idx"),
        ]

    # ------------------------------------------------------------------
    # Checkout helpers
    # ------------------------------------------------------------------

    @property
    def has_delivery_address(self) -> bool:
        info = self.buyer_info or {}
        return bool(info.get("delivery_address") or info.get("address"))

    def missing_buyer_fields(self) -> list[str]:
        info = self.buyer_info or {}
        return [f for f in REQUIRED_BUYER_FIELDS if not str(info.get(f) or "").strip()]

    @property
    def payment_ready(self) -> bool:
        try:
            return bool(self.payment.ready)  # type: ignore[attr-defined]
        except ObjectDoesNotExist:
            return False

    @property
    def payment_method(self) -> str:
        try:
            return self.payment.method or ""  # type: ignore[attr-defined]
        except ObjectDoesNotExist:
            return ""

    @property
    def contract_signed(self) -> bool:
        return self.contract_signed_at is not None

    @property
    def pricing_locked(self) -> bool:
        """Payment amounts are taken from the price once a method is selected."""
        return bool(self.payment_method) or self.step >= CheckoutStep.CONTRACT

    def buyer_full_name(self) -> str:
        info: dict[str, Any] = self.buyer_info or {}
        return " ".join(
            part for part in (info.get("first_name"), info.get("last_name")) if part
        ).strip()

    def __str__(self) -> str:
        return f"{self.name or self.model_name or self.model_slug} (step {self.step})"
