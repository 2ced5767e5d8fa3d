"""Storefront API client.

Used by non-browser front ends and integration scripts.  Every call
attaches ``Authorization: Bearer <token>`` when ``get_token`` returns one.

Failures:

- non-2xx responses raise ``ApiError`` with the decoded error payload;
- transport failures raise ``OfflineError``.  Build mutations
  (``create_build``/``patch_build``) are queued on the offline queue
  instead and return ``None``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

import httpx
import structlog

from clients.storefront.offline_queue import (
    OfflineQueue,
    OperationType,
    QueuedOperation,
    QueueStorage,
)
from shared.domain.notifications import ErrorKind, Toast, ToastType, toast_for

logger = structlog.get_logger(__name__)

TokenProvider = Callable[[], Optional[str]]


class ApiError(Exception):
    def __init__(self, status: int, payload: Any) -> None:
        self.status = status
        self.payload = payload if isinstance(payload, dict) else {"detail": payload}
        super().__init__(f"API request failed with status {status}")

    @property
    def code(self) -> Optional[str]:
        errors = self.payload.get("errors") or []
        return errors[0].get("code") if errors else None

    @property
    def toast(self) -> Toast:
        """User-facing notification sent by the server, or the generic one."""
        notification = self.payload.get("notification")
        if isinstance(notification, dict) and notification.get("message"):
            return Toast(
                type=ToastType(notification.get("type", ToastType.ERROR)),
                title=notification.get("title", "Error"),
                message=notification["message"],
            )
        return toast_for(None)


class OfflineError(Exception):
    kind = ErrorKind.OFFLINE

    @property
    def toast(self) -> Toast:
        return toast_for(self.kind)


class StorefrontClient:
    def __init__(
        self,
        base_url: str,
        get_token: Optional[TokenProvider] = None,
        offline_queue: Optional[OfflineQueue] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._get_token = get_token
        self.offline_queue = offline_queue
        self._http = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    def get_build(self, build_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/builds/{build_id}")

    def create_build(self, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self._request("POST", "/api/builds", json=dict(data))
        except OfflineError:
            if self.offline_queue is None:
                raise
            self.offline_queue.queue_build_create(dict(data))
            return None

    def patch_build(self, build_id: str, patch: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self._request("PATCH", f"/api/builds/{build_id}", json=dict(patch))
        except OfflineError:
            if self.offline_queue is None:
                raise
            self.offline_queue.queue_build_update(build_id, dict(patch))
            return None

    def advance_step(self, build_id: str, step: int) -> Dict[str, Any]:
        return self._request("POST", f"/api/builds/{build_id}/checkout-step", json={"step": step})

    def navigation(
        self, build_id: str, target: int, current: int, is_signed_in: bool = True
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/api/builds/{build_id}/navigation",
            json={"target": target, "current": current, "is_signed_in": is_signed_in},
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def payment_session(self, build_id: str) -> Dict[str, Any]:
        return self._request("GET", "/api/payments/session", params={"buildId": build_id})

    def payment(self, operation: str, build_id: str, **fields: Any) -> Dict[str, Any]:
        """POST ``/api/payments/<operation>`` with ``build_id`` and ``fields``."""
        return self._request(
            "POST", f"/api/payments/{operation}", json={"build_id": build_id, **fields}
        )

    def select_payment(
        self, build_id: str, method: str, plan_type: str, plan_percent: Any = None
    ) -> Dict[str, Any]:
        return self.payment(
            "select", build_id, method=method, plan_type=plan_type, plan_percent=plan_percent
        )

    def setup_ach(self, build_id: str) -> Dict[str, Any]:
        return self.payment("setup-ach", build_id)

    def save_ach_method(self, build_id: str, payment_method_id: str, **fields: Any) -> Dict[str, Any]:
        return self.payment("save-ach-method", build_id, payment_method_id=payment_method_id, **fields)

    def provision_bank_transfer(self, build_id: str) -> Dict[str, Any]:
        return self.payment("provision-bank-transfer", build_id)

    def bank_transfer_intents(
        self, build_id: str, payer_info: Mapping[str, Any], commitments: Mapping[str, bool]
    ) -> Dict[str, Any]:
        return self.payment(
            "bank-transfer-intents",
            build_id,
            payer_info=dict(payer_info),
            commitments=dict(commitments),
        )

    def setup_card(self, build_id: str) -> Dict[str, Any]:
        return self.payment("setup-card", build_id)

    def verify_card(self, build_id: str, payment_method_id: str, **fields: Any) -> Dict[str, Any]:
        return self.payment("verify-card", build_id, payment_method_id=payment_method_id, **fields)

    def save_card_method(
        self, build_id: str, payment_method_id: str, authorizations: Mapping[str, bool]
    ) -> Dict[str, Any]:
        return self.payment(
            "save-card-method",
            build_id,
            payment_method_id=payment_method_id,
            authorizations=dict(authorizations),
        )

    def mark_ready(self, build_id: str, mandate_accepted: Optional[bool] = None) -> Dict[str, Any]:
        return self.payment("mark-ready", build_id, mandate_accepted=mandate_accepted)

    def continue_to_contract(self, build_id: str) -> Dict[str, Any]:
        return self.payment("continue-to-contract", build_id)

    def process_card_payment(self, build_id: str, milestone: str) -> Dict[str, Any]:
        return self.payment("process-card-payment", build_id, milestone=milestone)

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def create_contract(self, build_id: str) -> Dict[str, Any]:
        return self._request("POST", "/api/contracts/create", json={"build_id": build_id})

    def contract_status(self, build_id: str) -> Dict[str, Any]:
        return self._request("GET", "/api/contracts/status", params={"buildId": build_id})

    def start_pack(self, pack: str, build_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/contracts/{pack}/start", json={"build_id": build_id})

    def mark_summary_reviewed(self, build_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/contracts/{build_id}/mark-summary-reviewed")

    # ------------------------------------------------------------------
    # Offline replay
    # ------------------------------------------------------------------

    def execute_queued(self, operation: QueuedOperation) -> Dict[str, Any]:
        """Offline queue executor; raises so the queue can count the failure."""
        method = "PATCH" if operation.type == OperationType.PATCH_BUILD else "POST"
        return self._request(method, operation.path, json=operation.body)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._get_token() if self._get_token else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TransportError as exc:
            logger.warning("storefront_api.offline", method=method, path=path, error=str(exc))
            raise OfflineError(str(exc)) from exc

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            logger.info(
                "storefront_api.error_response",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise ApiError(response.status_code, payload)

        if not response.content:
            return {}
        return response.json()


def connect(
    base_url: str,
    storage: QueueStorage,
    get_token: Optional[TokenProvider] = None,
    transport: Optional[httpx.BaseTransport] = None,
    **queue_options: Any,
) -> StorefrontClient:
    """Client with an offline queue wired to it.  Call ``offline_queue.start()`` to begin replay."""
    client = StorefrontClient(base_url, get_token=get_token, transport=transport)
    client.offline_queue = OfflineQueue(
        executor=client.execute_queued, storage=storage, **queue_options
    )
    return client
