"""
Pydantic schemas for the applicant data the eligibility engine reads
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
import uuid


class PersonBase(BaseModel):
    """Base schema for Person"""
    surname: str = Field(..., min_length=1, max_length=50)
    first_name: str = Field(..., min_length=1, max_length=50)
    birth_date: Optional[date] = None

    @field_validator('surname', 'first_name')
    @classmethod
    def capitalize_names(cls, v: str) -> str:
        """Names are stored in capitals"""
        return v.strip().upper()

    @field_validator('birth_date')
    @classmethod
    def validate_birth_date(cls, v):
        """Birth date cannot be in the future"""
        if v is not None and v > date.today():
            raise ValueError("Birth date cannot be in the future")
        return v


class PersonCreate(PersonBase):
    """Schema for creating a person"""
    pass


class Person(PersonBase):
    """Schema for returning person data"""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: Optional[datetime] = None
