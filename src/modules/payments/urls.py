"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from modules.payments.views import PaymentViewSet, StripeWebhookView

router = DefaultRouter(trailing_slash=False)
router.register("payments", PaymentViewSet, basename="payment")

urlpatterns = [
    path("webhooks/stripe", StripeWebhookView.as_view(), name="stripe-webhook"),
] + router.urls
