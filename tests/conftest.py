import json
from collections import defaultdict
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.builds.constants import CheckoutStep
from modules.builds.models import Build
from modules.builds.repositories.django_repository import BuildDjangoRepository
from modules.builds.services import BuildService
from modules.contracts.dtos import SigningSession, SubmissionState
from modules.contracts.esign import IESignatureClient
from modules.contracts.exceptions import SigningSessionError
from modules.contracts.repositories.django_repository import ContractDjangoRepository
from modules.contracts.services import ContractOrchestrator
from modules.payments.constants import PaymentMethod, PaymentStatus, PaymentStep, PlanType
from modules.payments.dtos import (
    CardVerification,
    ChargeResult,
    SetupIntentState,
    SetupSession,
    VirtualAccount,
)
from modules.payments.exceptions import ProcessorError
from modules.payments.models import BuildPayment
from modules.payments.processors import IPaymentProcessor
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.retry import SetupRetryPolicy
from modules.payments.services import PaymentService
from modules.storefront_settings.repositories.django_repository import (
    SettingsDjangoRepository,
)
from modules.storefront_settings.services import SettingsProvider
from shared.domain.notifications import ErrorKind

BUYER_INFO = {
    "first_name": "Avery",
    "last_name": "Jordan",
    "email": "avery@example.com",
    "phone": "512-555-0100",
    "address": "1200 Main St",
    "city": "Austin",
    "state": "TX",
    "zip": "78701",
}

TEMPLATE_IDS = {"masterRetail": "1001", "delivery": "1002"}

VALID_STRIPE_SIGNATURE = "t=1,v1=valid"


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakePaymentProcessor(IPaymentProcessor):
    """In-memory processor.

    Append ``ProcessorError`` instances to ``failures[<method name>]`` to
    script outages; each call pops one failure before succeeding.
    """

    def __init__(self) -> None:
        self.failures: dict[str, list[ProcessorError]] = defaultdict(list)
        self.calls: list[tuple[str, dict]] = []
        self.verification_status = "succeeded"
        self.charge_status = "succeeded"
        self.setup_intent_status = "succeeded"
        self._sequence = 0

    def fail(self, method: str, kind: ErrorKind = ErrorKind.PROCESSING_ERROR, times: int = 1):
        self.failures[method].extend(ProcessorError(kind, f"{method} failed") for _ in range(times))

    def call_count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def _record(self, name: str, /, **params) -> int:
        self.calls.append((name, params))
        if self.failures[name]:
            raise self.failures[name].pop(0)
        self._sequence += 1
        return self._sequence

    def ensure_customer(self, customer_id, email, name, metadata, address=None) -> str:
        self._record("ensure_customer", customer_id=customer_id, email=email, name=name)
        return customer_id or "cus_test"

    def create_setup_intent(self, customer_id, method, metadata) -> SetupSession:
        n = self._record("create_setup_intent", customer_id=customer_id, method=method)
        return SetupSession(
            setup_intent_id=f"seti_{n}",
            client_secret=f"seti_{n}_secret_{n}",
            customer_id=customer_id,
        )

    def attach_payment_method(self, payment_method_id, customer_id) -> None:
        self._record("attach_payment_method", payment_method_id=payment_method_id)

    def verify_card(self, customer_id, payment_method_id, metadata) -> CardVerification:
        n = self._record("verify_card", payment_method_id=payment_method_id)
        return CardVerification(
            status=self.verification_status,
            setup_intent_id=f"seti_card_{n}",
            client_secret=f"seti_card_{n}_secret",
            payment_method_id=payment_method_id,
            brand="visa",
            last4="4242",
            exp_month=12,
            exp_year=2030,
        )

    def create_virtual_account(self, metadata) -> VirtualAccount:
        n = self._record("create_virtual_account", metadata=dict(metadata))
        return VirtualAccount(
            id=f"fa_{n}", account_id=f"acct_{n}", routing_number="110000000", account_number="000123456789"
        )

    def charge(self, amount_cents, customer_id, payment_method_id, metadata) -> ChargeResult:
        n = self._record(
            "charge",
            amount_cents=amount_cents,
            payment_method_id=payment_method_id,
            metadata=dict(metadata),
        )
        return ChargeResult(id=f"pi_{n}", status=self.charge_status, client_secret=f"pi_{n}_secret")

    def retrieve_setup_intent(self, setup_intent_id) -> SetupIntentState:
        self._record("retrieve_setup_intent", setup_intent_id=setup_intent_id)
        return SetupIntentState(id=setup_intent_id, status=self.setup_intent_status)

    def construct_webhook_event(self, payload, signature):
        self._record("construct_webhook_event")
        if signature != VALID_STRIPE_SIGNATURE:
            raise ProcessorError(ErrorKind.VALIDATION, "Invalid webhook signature.")
        return json.loads(payload)


class FakeESignClient(IESignatureClient):
    """In-memory DocuSeal: submissions stay ``pending`` until ``complete()``."""

    def __init__(self) -> None:
        self.created: list[dict] = []
        self.statuses: dict[str, str] = {}
        self.lookups: list[str] = []
        self.fail_create = False
        self.fail_get = False

    def create_submission(self, template_id, prefill, submitters, metadata=None) -> SigningSession:
        if self.fail_create:
            raise SigningSessionError("DocuSeal is unreachable.")
        submission_id = str(500 + len(self.created))
        self.created.append(
            {
                "template_id": template_id,
                "prefill": dict(prefill),
                "submitters": list(submitters),
                "metadata": dict(metadata or {}),
                "submission_id": submission_id,
            }
        )
        self.statuses[submission_id] = "pending"
        return SigningSession(
            submission_id=submission_id, signing_url=f"https://sign.test/s/{submission_id}"
        )

    def get_submission(self, submission_id) -> SubmissionState:
        self.lookups.append(submission_id)
        if self.fail_get:
            raise SigningSessionError("DocuSeal is unreachable.")
        status = self.statuses.get(submission_id, "pending")
        completed = status == "completed"
        return SubmissionState(
            submission_id=submission_id,
            status=status,
            document_url=f"https://sign.test/d/{submission_id}.pdf" if completed else None,
            audit_trail_url=f"https://sign.test/a/{submission_id}.pdf" if completed else None,
        )

    def complete(self, submission_id: str) -> None:
        self.statuses[submission_id] = "completed"


# ---------------------------------------------------------------------------
# Database and clients
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Settings and throttle counters live in the cache."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def user():
    return get_user_model().objects.create_user(
        username="buyer", password="buyer-pass-123", email="avery@example.com"
    )


@pytest.fixture()
def other_user():
    return get_user_model().objects.create_user(username="intruder", password="intruder-pass-123")


@pytest.fixture()
def owner_id(user):
    return str(user.pk)


@pytest.fixture()
def auth_client(api_client, user):
    api_client.force_authenticate(user=user)
    return api_client


# ---------------------------------------------------------------------------
# Domain data
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_build(owner_id):
    """Factory for a build priced like the reference order (96,156.25 cents)."""

    def _make(**overrides) -> Build:
        data = {
            "owner_id": owner_id,
            "model_slug": "magnolia",
            "model_name": "The Magnolia",
            "name": "My Magnolia",
            "base_price_cents": Decimal("80000"),
            "options": [{"id": "porch", "name": "Covered porch", "price": "5000"}],
            "delivery_fee_cents": Decimal("2000"),
            "buyer_info": dict(BUYER_INFO),
            "step": CheckoutStep.OVERVIEW,
        }
        data.update(overrides)
        return Build.objects.create(**data)

    return _make


@pytest.fixture()
def build(make_build):
    return make_build()


@pytest.fixture()
def make_ready_payment():
    """Attach an ACH payment that already passed ``mark_ready``."""

    def _make(target: Build, **overrides) -> BuildPayment:
        data = {
            "build": target,
            "method": PaymentMethod.ACH_DEBIT,
            "plan_type": PlanType.DEPOSIT,
            "plan_percent": Decimal("25"),
            "session_step": PaymentStep.REVIEW,
            "ready": True,
            "status": PaymentStatus.READY,
            "processor_customer_id": "cus_test",
            "setup_intent_id": "seti_ready",
            "saved_payment_method_id": "pm_bank",
            "mandate_accepted": True,
        }
        data.update(overrides)
        return BuildPayment.objects.create(**data)

    return _make


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_processor():
    return FakePaymentProcessor()


@pytest.fixture()
def fake_esign():
    return FakeESignClient()


@pytest.fixture()
def settings_provider():
    return SettingsProvider(SettingsDjangoRepository())


@pytest.fixture()
def build_service(settings_provider):
    return BuildService(
        build_repository=BuildDjangoRepository(),
        settings_provider=settings_provider,
    )


@pytest.fixture()
def payment_service(fake_processor, settings_provider, build_service):
    return PaymentService(
        build_repository=BuildDjangoRepository(),
        payment_repository=PaymentDjangoRepository(),
        processor=fake_processor,
        settings_provider=settings_provider,
        build_service=build_service,
        retry_policy=SetupRetryPolicy(max_retries=2, delay_seconds=0, sleep=lambda _: None),
    )


@pytest.fixture()
def orchestrator(fake_esign, settings_provider, build_service):
    return ContractOrchestrator(
        build_repository=BuildDjangoRepository(),
        contract_repository=ContractDjangoRepository(),
        esign_client=fake_esign,
        settings_provider=settings_provider,
        build_service=build_service,
        template_ids=TEMPLATE_IDS,
    )


@pytest.fixture()
def patched_processor(monkeypatch, fake_processor):
    """Route the payment views and tasks to the fake processor."""
    monkeypatch.setattr("modules.payments.views.get_payment_processor", lambda: fake_processor)
    return fake_processor


@pytest.fixture()
def patched_esign(monkeypatch, fake_esign):
    """Route the contract views and tasks to the fake DocuSeal client."""
    monkeypatch.setattr("modules.contracts.views.get_esign_client", lambda: fake_esign)
    return fake_esign
