"""Shared persistence for the checkout modules.

``BaseModel`` gives every table a UUIDv7 key and timestamps.
``OutboxEvent`` stores the domain events a build, payment or contract
change produced, written in the same transaction as the change itself.
"""

from __future__ import annotations

import uuid6
from django.db import models
from django.utils import timezone

ERROR_MAX_LENGTH = 500


class BaseModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid6.uuid7, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        # auto_now only applies to fields that are actually written
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = [*update_fields, "updated_at"]
        super().save(*args, **kwargs)


class OutboxStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PUBLISHED = "published", "Published"
    FAILED = "failed", "Failed"


class OutboxTopic(models.TextChoices):
    BUILDS = "builds", "Builds"
    PAYMENTS = "payments", "Payments"
    CONTRACTS = "contracts", "Contracts"


class OutboxEventQuerySet(models.QuerySet):
    def publishable(self, max_attempts: int) -> OutboxEventQuerySet:
        """Pending rows plus failed rows that still have attempts left, oldest first."""
        return self.filter(
            models.Q(status=OutboxStatus.PENDING)
            | models.Q(status=OutboxStatus.FAILED, attempts__lt=max_attempts)
        ).order_by("created_at")

    def for_aggregate(self, aggregate_id) -> OutboxEventQuerySet:
        return self.filter(aggregate_id=str(aggregate_id))


class OutboxEvent(BaseModel):
    """A domain event waiting for (or done with) delivery to the event bus.

    ``payload`` is the event's dataclass fields as JSON; the relay rebuilds
    the event from it by ``event_type``.  A handler failure moves the row to
    ``failed`` and counts an attempt; the relay picks it up again until
    ``attempts`` reaches its limit.
    """

    event_type = models.CharField(max_length=100)
    topic = models.CharField(max_length=20, choices=OutboxTopic.choices)
    aggregate_id = models.CharField(max_length=64)
    payload = models.JSONField()
    status = models.CharField(
        max_length=12, choices=OutboxStatus.choices, default=OutboxStatus.PENDING
    )
    attempts = models.PositiveSmallIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")
    published_at = models.DateTimeField(null=True, blank=True)

    objects = OutboxEventQuerySet.as_manager()

    class Meta:
        db_table = "checkout_outbox"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="outbox_relay_idx"),
            models.Index(fields=["aggregate_id"], name="outbox_aggregate_idx"),
        ]

    def mark_published(self) -> None:
        self.status = OutboxStatus.PUBLISHED
        self.published_at = timezone.now()
        self.save(update_fields=["status", "published_at"])

    def mark_failed(self, error: str) -> None:
        self.status = OutboxStatus.FAILED
        self.attempts += 1
        self.last_error = error[:ERROR_MAX_LENGTH]
        self.save(update_fields=["status", "attempts", "last_error"])

    def __str__(self) -> str:
        return f"{self.topic}.{self.event_type} {self.aggregate_id} [{self.status}]"
