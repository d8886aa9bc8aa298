# app/services/prescription_service.py
from __future__ import annotations

import logging
from datetime import datetime
from io import BytesIO
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.hospital import Admin, Hospital
from app.models.prescription import Prescription, PrescriptionMedication
from app.schemas.prescription import (
    Complaints,
    Diagnosis,
    DoctorInfo,
    Examination,
    History,
    HospitalInfo,
    Medication,
    PatientInfo,
    PrescriptionBase,
    PrescriptionResponse,
    VersionInfo,
    Vitals,
)
from app.services.doctor_service import get_doctor
from app.services.prescription_version_service import (
    VersionConflictError,
    ensure_edit_allowed,
    get_prescription_record,
    next_version_info,
    supersede_and_append,
)
from app.utils.datetime_utils import utc_now
from app.utils.file_storage import store_prescription_pdf
from app.utils.prescription_pdf import PageRenderer, generate_prescription_pdf, normalize_page_format

logger = logging.getLogger(__name__)


class PrescriptionValidationError(Exception):
    pass


def _validate_payload(payload: PrescriptionBase) -> None:
    if not (payload.prescription_id or "").strip() or not (payload.patient_info.name or "").strip():
        raise PrescriptionValidationError("Prescription ID and Patient Name are required")


def _resolve_doctor_info(db: Session, *, hospital_id: UUID, payload: PrescriptionBase) -> DoctorInfo:
    """
    When a doctor_id is given, the letterhead comes from that doctor's record
    (which must be an active doctor of the same hospital).
    """
    if not payload.doctor_id:
        return payload.doctor_info

    doctor = get_doctor(db, hospital_id=hospital_id, doctor_id=payload.doctor_id, active_only=True)
    return DoctorInfo(
        name=doctor.name,
        qualification=doctor.qualification,
        specialization=doctor.specialization,
        regd_no=doctor.regd_no,
        clinic_address=doctor.clinic_address,
        signature_url=payload.doctor_info.signature_url or doctor.signature_url,
    )


def _hospital_block(hospital: Hospital | None, *, hospital_id: UUID, hospital_name: str, admin_id, admin_name: str) -> dict:
    return {
        "hospital_id": str(hospital_id),
        "hospital_name": hospital_name,
        "hospital_address": hospital.address if hospital else None,
        "hospital_phone": hospital.phone if hospital else None,
        "hospital_email": hospital.email if hospital else None,
        "admin_id": str(admin_id) if admin_id else None,
        "admin_name": admin_name,
    }


def _snapshot_from_payload(
    payload: PrescriptionBase,
    *,
    doctor_info: DoctorInfo,
    hospital_info: dict,
    created_at: datetime,
) -> dict:
    """
    Plain-dict snapshot of a prescription as it will be persisted; this is
    what the PDF renderer consumes.
    """
    data = payload.model_dump(mode="json")
    data["prescription_id"] = payload.prescription_id.strip()
    data["doctor_info"] = doctor_info.model_dump(mode="json")
    data["hospital_info"] = hospital_info
    data["created_at"] = created_at.isoformat()
    return data


def _render_and_store(snapshot: dict, *, version_number: int, renderer: PageRenderer | None) -> str:
    """
    Render the PDF (RenderError propagates, nothing has been written yet)
    and store it; storage problems degrade to an inline data URI.
    """
    pdf_buffer = generate_prescription_pdf(snapshot, get_settings().pdf_default_format, renderer=renderer)
    return store_prescription_pdf(
        pdf_buffer.getvalue(),
        prescription_id=snapshot["prescription_id"],
        version_number=version_number,
        timestamp_ms=int(utc_now().timestamp() * 1000),
    )


def _build_record(
    snapshot: dict,
    payload: PrescriptionBase,
    *,
    created_at: datetime,
    hospital_id: UUID,
    hospital_name: str,
    admin_id: UUID | None,
    admin_name: str,
    version_number: int,
    parent_report_id: UUID | None,
    pdf_url: str,
) -> Prescription:
    prescription = Prescription(
        prescription_id=snapshot["prescription_id"],
        doctor_id=payload.doctor_id,
        doctor_info=snapshot["doctor_info"],
        patient_info=snapshot["patient_info"],
        vitals=snapshot["vitals"],
        diagnosis=snapshot["diagnosis"],
        examination=snapshot["examination"],
        complaints=snapshot["complaints"],
        history=snapshot["history"],
        allergy=payload.allergy,
        notes=payload.notes,
        instructions=payload.instructions,
        footer_text=payload.footer_text,
        valid_till_date=payload.valid_till_date,
        hospital_id=hospital_id,
        hospital_name=hospital_name,
        admin_id=admin_id,
        admin_name=admin_name,
        version_number=version_number,
        is_latest=True,
        parent_report_id=parent_report_id,
        pdf_url=pdf_url,
        created_at=created_at,
        updated_at=created_at,
    )
    prescription.medications = [
        PrescriptionMedication(position=position, **medication.model_dump())
        for position, medication in enumerate(payload.medications)
    ]
    return prescription


def create_prescription(
    db: Session,
    *,
    hospital: Hospital,
    admin: Admin,
    payload: PrescriptionBase,
    now: datetime | None = None,
    renderer: PageRenderer | None = None,
) -> Prescription:
    """
    Create version 1 of a prescription.

    The PDF is rendered and stored before anything is persisted, so a
    render failure leaves no record behind.
    """
    _validate_payload(payload)
    created_at = now or utc_now()
    doctor_info = _resolve_doctor_info(db, hospital_id=hospital.id, payload=payload)

    snapshot = _snapshot_from_payload(
        payload,
        doctor_info=doctor_info,
        hospital_info=_hospital_block(
            hospital,
            hospital_id=hospital.id,
            hospital_name=hospital.name,
            admin_id=admin.id,
            admin_name=admin.name,
        ),
        created_at=created_at,
    )
    pdf_url = _render_and_store(snapshot, version_number=1, renderer=renderer)

    prescription = _build_record(
        snapshot,
        payload,
        created_at=created_at,
        hospital_id=hospital.id,
        hospital_name=hospital.name,
        admin_id=admin.id,
        admin_name=admin.name,
        version_number=1,
        parent_report_id=None,
        pdf_url=pdf_url,
    )

    try:
        db.add(prescription)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(prescription)
    logger.info("Prescription %s created (record %s)", prescription.prescription_id, prescription.id)
    return prescription


def update_prescription(
    db: Session,
    *,
    prescription_id: UUID,
    hospital: Hospital,
    payload: PrescriptionBase,
    now: datetime | None = None,
    renderer: PageRenderer | None = None,
) -> Prescription:
    """
    Edit a prescription by appending a new version.

    Order matters: guard, render and store first, then flip the old
    version and insert the new one atomically. If rendering fails the
    lineage is left exactly as it was.
    """
    current = get_prescription_record(db, prescription_id=prescription_id)
    now = now or utc_now()
    ensure_edit_allowed(current, hospital_id=hospital.id, now=now)
    _validate_payload(payload)

    next_version = next_version_info(current)
    doctor_info = _resolve_doctor_info(db, hospital_id=hospital.id, payload=payload)

    # Hospital attribution always comes from the superseded record
    snapshot = _snapshot_from_payload(
        payload,
        doctor_info=doctor_info,
        hospital_info=_hospital_block(
            hospital,
            hospital_id=current.hospital_id,
            hospital_name=current.hospital_name,
            admin_id=current.admin_id,
            admin_name=current.admin_name,
        ),
        created_at=now,
    )
    pdf_url = _render_and_store(snapshot, version_number=next_version.version_number, renderer=renderer)

    new_version = _build_record(
        snapshot,
        payload,
        created_at=now,
        hospital_id=current.hospital_id,
        hospital_name=current.hospital_name,
        admin_id=current.admin_id,
        admin_name=current.admin_name,
        version_number=next_version.version_number,
        parent_report_id=next_version.parent_report_id,
        pdf_url=pdf_url,
    )
    try:
        return supersede_and_append(db, current=current, new_version=new_version)
    except VersionConflictError:
        # The stored artifact belongs to no record now
        logger.warning("Orphaned PDF for rejected version of %s: %s", snapshot["prescription_id"], pdf_url[:200])
        raise


def get_prescription(db: Session, *, prescription_id: UUID, hospital_id: UUID | None = None) -> Prescription:
    return get_prescription_record(db, prescription_id=prescription_id, hospital_id=hospital_id)


def list_latest_prescriptions(db: Session, *, hospital_id: UUID) -> list[Prescription]:
    return (
        db.query(Prescription)
        .filter(Prescription.hospital_id == hospital_id, Prescription.is_latest.is_(True))
        .order_by(Prescription.created_at.desc())
        .all()
    )


def build_prescription_response(prescription: Prescription) -> PrescriptionResponse:
    return PrescriptionResponse(
        id=prescription.id,
        prescription_id=prescription.prescription_id,
        doctor_id=prescription.doctor_id,
        doctor_info=DoctorInfo.model_validate(prescription.doctor_info or {}),
        patient_info=PatientInfo.model_validate(prescription.patient_info or {}),
        vitals=Vitals.model_validate(prescription.vitals or {}),
        diagnosis=Diagnosis.model_validate(prescription.diagnosis or {}),
        examination=Examination.model_validate(prescription.examination or {}),
        complaints=Complaints.model_validate(prescription.complaints or {}),
        history=History.model_validate(prescription.history or {}),
        allergy=prescription.allergy,
        notes=prescription.notes,
        instructions=prescription.instructions,
        footer_text=prescription.footer_text,
        valid_till_date=prescription.valid_till_date,
        medications=[Medication.model_validate(m) for m in prescription.medications],
        hospital_info=HospitalInfo(
            hospital_id=prescription.hospital_id,
            hospital_name=prescription.hospital_name,
            admin_id=prescription.admin_id,
            admin_name=prescription.admin_name,
        ),
        version_info=VersionInfo(
            version_number=prescription.version_number,
            is_latest=prescription.is_latest,
            parent_report_id=prescription.parent_report_id,
        ),
        pdf_url=prescription.pdf_url,
        created_at=prescription.created_at,
        updated_at=prescription.updated_at,
    )


def render_prescription_download(
    db: Session,
    *,
    prescription_id: UUID,
    hospital_id: UUID,
    page_format: str,
    renderer: PageRenderer | None = None,
) -> tuple[Prescription, str, BytesIO]:
    """
    Regenerate the PDF of a stored version in the requested page format.
    Returns (record, normalized format, pdf buffer).
    """
    prescription = get_prescription_record(db, prescription_id=prescription_id, hospital_id=hospital_id)
    page_format = normalize_page_format(page_format)

    snapshot = build_prescription_response(prescription).model_dump(mode="json")
    hospital = db.get(Hospital, prescription.hospital_id)
    snapshot["hospital_info"] = _hospital_block(
        hospital,
        hospital_id=prescription.hospital_id,
        hospital_name=prescription.hospital_name,
        admin_id=prescription.admin_id,
        admin_name=prescription.admin_name,
    )

    logger.info("Generating PDF download for %s in %s format", prescription.id, page_format)
    return prescription, page_format, generate_prescription_pdf(snapshot, page_format, renderer=renderer)
