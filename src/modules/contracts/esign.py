"""E-signature collaborator client.

``IESignatureClient`` exposes the two calls the orchestrator needs:
"create a signing session for a pack" and "get the state of a
submission".  ``DocuSealClient`` implements them over ``httpx``; every
transport or HTTP failure leaves this module as ``SigningSessionError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

import httpx
import structlog

from modules.contracts.dtos import SigningSession, SubmissionState
from modules.contracts.exceptions import SigningSessionError

logger = structlog.get_logger(__name__)


class IESignatureClient(ABC):
    @abstractmethod
    def create_submission(
        self,
        template_id: str,
        prefill: Mapping[str, Any],
        submitters: List[Dict[str, Any]],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> SigningSession: ...

    @abstractmethod
    def get_submission(self, submission_id: str) -> SubmissionState: ...


class DocuSealClient(IESignatureClient):
    """DocuSeal REST API (``X-Auth-Token`` authentication).

    Prefill values are sent as read-only submitter fields so they show up
    in the signed PDF as well as the signing form.  ``completed_redirect_url``
    may reference metadata keys, e.g. ``.../checkout/{build_id}/agreement``.
    """

    def __init__(
        self,
        api_base: str,
        api_key: str,
        timeout: float = 15.0,
        completed_redirect_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=api_base.rstrip("/"),
            headers={"X-Auth-Token": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._completed_redirect_url = completed_redirect_url

    def close(self) -> None:
        self._client.close()

    def create_submission(
        self,
        template_id: str,
        prefill: Mapping[str, Any],
        submitters: List[Dict[str, Any]],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> SigningSession:
        fields = [
            {"name": name, "default_value": "" if value is None else str(value), "readonly": True}
            for name, value in prefill.items()
        ]
        extra: Dict[str, Any] = {}
        if self._completed_redirect_url:
            extra["completed_redirect_url"] = self._completed_redirect_url.format_map(
                dict(metadata or {})
            )
        body = {
            "template_id": template_id,
            "order": "preserved",
            "send_email": False,
            "submitters": [
                {**submitter, **extra, "fields": fields, "metadata": dict(metadata or {})}
                for submitter in submitters
            ],
            "flatten": True,
        }
        data = self._request("POST", "/submissions", json=body)
        session = _parse_submission(data)
        logger.info(
            "contract.signing_session_created",
            template_id=template_id,
            submission_id=session.submission_id,
            prefill_fields=len(fields),
        )
        return session

    def get_submission(self, submission_id: str) -> SubmissionState:
        data = self._request("GET", f"/submissions/{submission_id}")
        documents = data.get("documents") or []
        return SubmissionState(
            submission_id=str(data.get("id") or submission_id),
            status=str(data.get("status") or "pending"),
            document_url=(documents[0] or {}).get("url") if documents else None,
            audit_trail_url=data.get("audit_log_url"),
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "contract.esign_request_failed",
                method=method,
                url=url,
                status_code=exc.response.status_code,
            )
            raise SigningSessionError(
                f"DocuSeal request failed: {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("contract.esign_unreachable", method=method, url=url, error=str(exc))
            raise SigningSessionError("DocuSeal is unreachable.") from exc
        return response.json()


def _parse_submission(data: Any) -> SigningSession:
    """DocuSeal answers with either a submitter list or a submission object."""
    if isinstance(data, list):
        first = data[0] if data else {}
        submission_id = first.get("submission_id") or first.get("id")
        signing_url = first.get("embed_src") or first.get("url")
    else:
        submitters = data.get("submitters") or [{}]
        submission_id = data.get("id") or (data.get("submission") or {}).get("id")
        signing_url = submitters[0].get("embed_src") or submitters[0].get("url") or data.get("embed_src")
    if not submission_id or not signing_url:
        raise SigningSessionError("DocuSeal returned no signing URL.")
    return SigningSession(submission_id=str(submission_id), signing_url=str(signing_url))
