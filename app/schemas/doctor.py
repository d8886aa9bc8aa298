from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator


class DoctorBase(BaseModel):
    name: str
    qualification: str
    specialization: str
    regd_no: str
    clinic_address: str
    contact_number: str | None = None
    email: str | None = None
    signature_url: str | None = None

    @field_validator("name", "qualification", "specialization", "regd_no", "clinic_address")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field is required")
        return v


class DoctorCreate(DoctorBase):
    pass


class DoctorUpdate(BaseModel):
    name: str | None = None
    qualification: str | None = None
    specialization: str | None = None
    regd_no: str | None = None
    clinic_address: str | None = None
    contact_number: str | None = None
    email: str | None = None
    signature_url: str | None = None
    is_active: bool | None = None


class DoctorResponse(DoctorBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    hospital_id: UUID
    is_active: bool
    created_at: datetime
