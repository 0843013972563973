"""
Input validation schemas using Pydantic for the inventory API.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from larder.utilities.dates import as_utc


class AddBatchInput(BaseModel):
    """Schema for receiving a new batch."""
    product_id: UUID
    batch_size: int = Field(..., gt=0, le=1_000_000)
    expiration: Optional[datetime] = None

    @field_validator('expiration')
    @classmethod
    def normalize_expiration(cls, v):
        """Naive timestamps are read as UTC."""
        return as_utc(v) if v is not None else None


class FixExpirationInput(BaseModel):
    """Schema for correcting a batch's expiration."""
    expiration: datetime

    @field_validator('expiration')
    @classmethod
    def normalize_expiration(cls, v):
        return as_utc(v)


class FixQuantitiesInput(BaseModel):
    """Schema for correcting a batch's quantities.

    available_quantity may exceed batch_size: corrections are operator overrides.
    """
    batch_size: int = Field(..., ge=0)
    available_quantity: int = Field(..., ge=0)
