"""Pydantic schemas for the orders API.

``OrderReadDTO`` is the wire shape of an order; ``TransitionDTO`` validates
the body of a status change request.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .domain import OrderStatus


class OrderReadDTO(BaseModel):
    """Read model returned by every order endpoint.

    Built straight from a domain ``Order`` (``from_attributes``). Failure
    reasons are dropped from the JSON when null (``exclude_none``).
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    status: OrderStatus
    version: int
    fail_reason_code: str | None = None
    fail_reason_detail: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TransitionDTO(BaseModel):
    """Schema for a status change.

    Attributes:
        status: Target status. Kept as a plain string so an unknown value is
            reported as an invalid status rather than a body error.
        expected_version: Optional version the client last saw; a mismatch
            yields a conflict.
        fail_reason_code: Short failure code, only allowed with FAILED.
        fail_reason_detail: Free-text failure detail, only allowed with FAILED.
    """

    status: str = Field(min_length=1, max_length=32)
    expected_version: int | None = Field(default=None, ge=0)
    fail_reason_code: str | None = Field(default=None, min_length=1, max_length=64)
    fail_reason_detail: str | None = Field(default=None, max_length=1000)

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        """Strip whitespace and uppercase the status."""
        return v.strip().upper()

    @model_validator(mode="after")
    def reasons_only_when_failed(self):
        """Reject failure reasons for any target other than FAILED."""
        if self.status != OrderStatus.FAILED.value and (self.fail_reason_code or self.fail_reason_detail):
            raise ValueError("fail reason is only allowed for FAILED")
        return self


class ErrorDTO(BaseModel):
    """Error body shared by all endpoints."""

    error: str
