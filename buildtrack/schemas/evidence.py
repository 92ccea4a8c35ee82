"""Evidence Pydantic schemas. File contents travel base64-encoded."""

import base64
import binascii
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from buildtrack.domain.evidence import EvidenceFileInput


class EvidenceFileUpload(BaseModel):
    file_name: str
    mime_type: str = "application/octet-stream"
    content_base64: str

    @field_validator("content_base64")
    @classmethod
    def must_be_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("content_base64 is not valid base64") from exc
        return v

    def to_domain(self) -> EvidenceFileInput:
        return EvidenceFileInput(
            file_name=self.file_name,
            mime_type=self.mime_type,
            data=base64.b64decode(self.content_base64),
        )


class SubmitEvidenceRequest(BaseModel):
    qty_or_percent: float
    remarks: str | None = None
    files: list[EvidenceFileUpload] = []


class ReviewEvidenceRequest(BaseModel):
    action: str  # APPROVE or REJECT
    note: str | None = None


class EvidenceFileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    file_name: str
    mime_type: str
    size: int
    storage_key: str


class EvidenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    milestone_id: uuid.UUID
    submitted_by_id: uuid.UUID
    qty_or_percent: float
    remarks: str | None = None
    frozen: bool
    status: str
    reviewed_at: datetime | None = None
    reviewed_by_id: uuid.UUID | None = None
    review_note: str | None = None
    submitted_at: datetime


class EvidenceDetailResponse(EvidenceResponse):
    files: list[EvidenceFileResponse] = []
