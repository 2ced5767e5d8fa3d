"""Contract URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.contracts.views import (
    ContractCreateView,
    ContractStatusView,
    DocuSealWebhookView,
    MarkSummaryReviewedView,
    StartPackView,
)

urlpatterns = [
    path("contracts/create", ContractCreateView.as_view(), name="contract-create"),
    path("contracts/status", ContractStatusView.as_view(), name="contract-status"),
    path(
        "contracts/<uuid:build_id>/mark-summary-reviewed",
        MarkSummaryReviewedView.as_view(),
        name="contract-mark-summary-reviewed",
    ),
    path("contracts/<str:template>/start", StartPackView.as_view(), name="contract-start"),
    path("webhooks/docuseal", DocuSealWebhookView.as_view(), name="docuseal-webhook"),
]
