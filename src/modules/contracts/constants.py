"""Contract pack constants.

Packs are signed strictly in ``PACK_ORDER``.  The summary pack is never
sent for signature; the buyer only acknowledges it (``reviewed``).
"""

from django.db import models


class ContractPackId(models.TextChoices):
    SUMMARY = "summary", "Order Summary"
    AGREEMENT = "agreement", "Purchase Agreement"
    DELIVERY = "delivery", "Delivery & Site Readiness"
    FINAL = "final", "Final Acknowledgments"


class PackStatus(models.TextChoices):
    NOT_STARTED = "not_started", "Not started"
    REVIEWED = "reviewed", "Reviewed"
    IN_PROGRESS = "in_progress", "In progress"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    VOIDED = "voided", "Voided"


class CompletionSource(models.TextChoices):
    WEBHOOK = "webhook", "Webhook"
    MESSAGE = "message", "Message event"
    POLL = "poll", "Poll"


PACK_ORDER: tuple[str, ...] = (
    ContractPackId.SUMMARY,
    ContractPackId.AGREEMENT,
    ContractPackId.DELIVERY,
    ContractPackId.FINAL,
)

SIGNATURE_PACKS: tuple[str, ...] = PACK_ORDER[1:]

# Status a pack must hold before the next one opens.
UNLOCKING_STATUS: dict[str, str] = {
    ContractPackId.SUMMARY: PackStatus.REVIEWED,
    ContractPackId.AGREEMENT: PackStatus.COMPLETED,
    ContractPackId.DELIVERY: PackStatus.COMPLETED,
}

# DocuSeal template key per signature pack (ids come from settings).
PACK_TEMPLATES: dict[str, str] = {
    ContractPackId.AGREEMENT: "masterRetail",
    ContractPackId.DELIVERY: "delivery",
    ContractPackId.FINAL: "masterRetail",
}

RESTARTABLE_STATUSES = frozenset({PackStatus.NOT_STARTED, PackStatus.FAILED, PackStatus.VOIDED})

# Submission states reported by DocuSeal.
SUBMISSION_COMPLETED = frozenset({"completed", "form.completed", "submission.completed"})
SUBMISSION_FAILED = frozenset(
    {"declined", "expired", "form.declined", "submission.expired", "submission.archived"}
)

CONTRACT_TOPIC = "contracts"

# Submitter role names as defined in each DocuSeal template.
TEMPLATE_ROLES: dict[str, str] = {
    "masterRetail": "buyer",
    "delivery": "Buyer",
}
