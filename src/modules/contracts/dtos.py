"""E-signature collaborator results."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from modules.contracts.constants import SUBMISSION_COMPLETED, SUBMISSION_FAILED


class SigningSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    submission_id: str
    signing_url: str


class SubmissionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    submission_id: str
    status: str
    document_url: Optional[str] = None
    audit_trail_url: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status in SUBMISSION_COMPLETED

    @property
    def failed(self) -> bool:
        return self.status in SUBMISSION_FAILED
