from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.doctor import Doctor
from app.schemas.doctor import DoctorCreate, DoctorUpdate

logger = logging.getLogger(__name__)


class DoctorNotFoundError(Exception):
    pass


class DuplicateDoctorError(Exception):
    pass


def _regd_no_taken(db: Session, *, hospital_id: UUID, regd_no: str, exclude_id: UUID | None = None) -> bool:
    query = db.query(Doctor).filter(Doctor.hospital_id == hospital_id, Doctor.regd_no == regd_no)
    if exclude_id:
        query = query.filter(Doctor.id != exclude_id)
    return query.first() is not None


def list_active_doctors(db: Session, *, hospital_id: UUID) -> list[Doctor]:
    return (
        db.query(Doctor)
        .filter(Doctor.hospital_id == hospital_id, Doctor.is_active.is_(True))
        .order_by(Doctor.name.asc())
        .all()
    )


def get_doctor(db: Session, *, hospital_id: UUID, doctor_id: UUID, active_only: bool = False) -> Doctor:
    query = db.query(Doctor).filter(Doctor.id == doctor_id, Doctor.hospital_id == hospital_id)
    if active_only:
        query = query.filter(Doctor.is_active.is_(True))
    doctor = query.first()
    if not doctor:
        raise DoctorNotFoundError("Doctor not found")
    return doctor


def create_doctor(db: Session, *, hospital_id: UUID, payload: DoctorCreate) -> Doctor:
    if _regd_no_taken(db, hospital_id=hospital_id, regd_no=payload.regd_no):
        raise DuplicateDoctorError("Doctor with this registration number already exists in your hospital")

    doctor = Doctor(hospital_id=hospital_id, **payload.model_dump())
    try:
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
    except SQLAlchemyError:
        db.rollback()
        raise
    return doctor


def update_doctor(db: Session, *, hospital_id: UUID, doctor_id: UUID, payload: DoctorUpdate) -> Doctor:
    """
    Partial update: only fields sent with a non-null value are changed.
    """
    doctor = get_doctor(db, hospital_id=hospital_id, doctor_id=doctor_id)

    changes = payload.model_dump(exclude_none=True)
    new_regd_no = changes.get("regd_no")
    if new_regd_no and new_regd_no != doctor.regd_no:
        if _regd_no_taken(db, hospital_id=hospital_id, regd_no=new_regd_no, exclude_id=doctor.id):
            raise DuplicateDoctorError("Doctor with this registration number already exists in your hospital")

    for field, value in changes.items():
        setattr(doctor, field, value)

    try:
        db.commit()
        db.refresh(doctor)
    except SQLAlchemyError:
        db.rollback()
        raise
    return doctor


def deactivate_doctor(db: Session, *, hospital_id: UUID, doctor_id: UUID) -> Doctor:
    doctor = get_doctor(db, hospital_id=hospital_id, doctor_id=doctor_id)
    doctor.is_active = False
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info("Doctor %s deactivated for hospital %s", doctor_id, hospital_id)
    return doctor
