# app/schemas/prescription.py
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DoctorInfo(BaseModel):
    name: str | None = None
    qualification: str | None = None
    specialization: str | None = None
    regd_no: str | None = None
    clinic_address: str | None = None
    signature_url: str | None = None


class PatientInfo(BaseModel):
    name: str | None = None
    age: int | None = None
    gender: str | None = None  # "M" / "F" / free text
    patient_id: str | None = None


class Vitals(BaseModel):
    height: float | None = None  # cm
    weight: float | None = None  # kg
    temp: float | None = None  # F
    hr: int | None = None  # BPM
    bp: str | None = None  # e.g. "120/80"


class Diagnosis(BaseModel):
    current: str | None = None
    current_icd: str | None = None
    known: str | None = None


class Examination(BaseModel):
    nutritional_assessment: str | None = None
    other_findings: str | None = None


class Complaints(BaseModel):
    symptoms: str | None = None
    duration: str | None = None


class History(BaseModel):
    personal: str | None = None
    family: str | None = None
    last_updated: datetime | None = None


class Medication(BaseModel):
    # Dose counts and quantities may be sent as numbers
    model_config = ConfigDict(from_attributes=True, coerce_numbers_to_str=True)

    name: str | None = None
    composition: str | None = None
    morning: str | None = None
    afternoon: str | None = None
    evening: str | None = None
    night: str | None = None
    timing: str | None = None
    duration: str | None = None
    quantity: str | None = None


class PrescriptionBase(BaseModel):
    prescription_id: str | None = None
    doctor_id: UUID | None = None  # Optional: fills doctor_info from the hospital's doctor record
    doctor_info: DoctorInfo = Field(default_factory=DoctorInfo)
    patient_info: PatientInfo = Field(default_factory=PatientInfo)
    vitals: Vitals = Field(default_factory=Vitals)
    diagnosis: Diagnosis = Field(default_factory=Diagnosis)
    examination: Examination = Field(default_factory=Examination)
    complaints: Complaints = Field(default_factory=Complaints)
    history: History = Field(default_factory=History)
    allergy: str | None = None
    notes: str | None = None
    instructions: str | None = None
    footer_text: str | None = None
    valid_till_date: datetime | None = None
    medications: list[Medication] = Field(default_factory=list)


class PrescriptionCreate(PrescriptionBase):
    pass


class PrescriptionUpdate(PrescriptionBase):
    pass


class HospitalInfo(BaseModel):
    hospital_id: UUID
    hospital_name: str
    admin_id: UUID | None = None
    admin_name: str


class VersionInfo(BaseModel):
    version_number: int
    is_latest: bool
    parent_report_id: UUID | None = None


class PrescriptionResponse(BaseModel):
    id: UUID
    prescription_id: str
    doctor_id: UUID | None = None
    doctor_info: DoctorInfo
    patient_info: PatientInfo
    vitals: Vitals
    diagnosis: Diagnosis
    examination: Examination
    complaints: Complaints
    history: History
    allergy: str | None = None
    notes: str | None = None
    instructions: str | None = None
    footer_text: str | None = None
    valid_till_date: datetime | None = None
    medications: list[Medication]
    hospital_info: HospitalInfo
    version_info: VersionInfo
    pdf_url: str | None = None
    created_at: datetime
    updated_at: datetime
