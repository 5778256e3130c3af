"""Pydantic v2 schemas for disputes and evidence."""

from datetime import datetime

from pydantic import Field, field_validator

from middlesman.models.dispute import DisputeStatus, ResolutionType
from middlesman.schemas.base import CamelModel, Pagination, enum_value
from middlesman.schemas.transaction import TransactionResponse
from middlesman.schemas.user import UserSummary


class DisputeCreate(CamelModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=10, max_length=8192)
    raised_by_id: int = Field(..., gt=0)
    milestone_id: int | None = Field(None, gt=0)


class DisputeUpdate(CamelModel):
    """Admin PATCH. Every field is optional; omitted fields keep their value."""
    status: DisputeStatus | None = None
    resolution: str | None = Field(None, max_length=8192)
    resolution_type: ResolutionType | None = None
    assigned_to_id: int | None = Field(None, gt=0)


class EvidenceCreate(CamelModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str | None = Field(None, max_length=8192)
    file_url: str | None = Field(None, max_length=2048)
    file_type: str | None = Field(None, max_length=64)

    @field_validator("file_url")
    @classmethod
    def validate_file_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("https://", "http://")):
            raise ValueError("file_url must be an http(s) URL")
        return v


class EvidenceResponse(CamelModel):
    id: int
    title: str
    description: str | None
    file_url: str | None
    file_type: str | None
    dispute_id: int
    submitted_by_id: int
    created_at: datetime


class DisputeResponse(CamelModel):
    id: int
    title: str
    description: str
    status: str
    resolution: str | None
    resolution_type: str | None
    transaction_id: int
    milestone_id: int | None
    raised_by_id: int
    assigned_to_id: int | None
    created_at: datetime
    updated_at: datetime

    @field_validator("status", "resolution_type", mode="before")
    @classmethod
    def serialize_enum(cls, v: object) -> object:
        return enum_value(v)


class DisputeDetail(DisputeResponse):
    raised_by: UserSummary | None = None
    assigned_to: UserSummary | None = None
    evidence: list[EvidenceResponse] = []
    transaction: TransactionResponse | None = None


class DisputeList(CamelModel):
    disputes: list[DisputeDetail]
    pagination: Pagination
