from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator


class HospitalRegisterRequest(BaseModel):
    name: str
    email: EmailStr
    address: str
    phone: str
    registration_number: str

    admin_name: str
    admin_email: EmailStr
    admin_password: str

    @field_validator("name", "address", "phone", "registration_number", "admin_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field is required")
        return v

    @field_validator("admin_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters long")
        return v


class HospitalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: EmailStr
    address: str
    phone: str
    registration_number: str
    is_active: bool
    created_at: datetime
