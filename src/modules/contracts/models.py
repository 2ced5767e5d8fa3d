"""Contract pack persistence.

One ``ContractPack`` row per (build, pack).  Rows are created lazily the
first time a build's contract status is read.
"""

from __future__ import annotations

from django.db import models

from modules.contracts.constants import CompletionSource, ContractPackId, PackStatus
from modules.core.models import BaseModel
from shared.domain.events import DomainEventMixin


class ContractPack(DomainEventMixin, BaseModel):
    build = models.ForeignKey(
        "builds.Build",
        on_delete=models.CASCADE,
        related_name="contract_packs",
    )
    pack = models.CharField(max_length=20, choices=ContractPackId.choices)
    status = models.CharField(
        max_length=20, choices=PackStatus.choices, default=PackStatus.NOT_STARTED
    )
    submission_id = models.CharField(max_length=100, blank=True, default="", db_index=True)
    signing_url = models.URLField(max_length=500, blank=True, default="")
    reviewed_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    completion_source = models.CharField(
        max_length=20, choices=CompletionSource.choices, blank=True, default=""
    )
    signed_document_url = models.URLField(max_length=500, blank=True, default="")
    audit_trail_url = models.URLField(max_length=500, blank=True, default="")
    last_error = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        db_table = "contract_packs"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["build", "pack"], name="contract_pack_unique_per_build"),
        ]

    @property
    def is_completed(self) -> bool:
        return self.status == PackStatus.COMPLETED

    def __str__(self) -> str:
        return f"{self.pack} ({self.status}) for build {self.build_id}"
