import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.security import get_password_hash
from app.models.hospital import Admin, AdminRole, Hospital
from app.schemas.hospital import HospitalRegisterRequest

logger = logging.getLogger(__name__)


class HospitalAlreadyRegisteredError(Exception):
    pass


def register_hospital(db: Session, payload: HospitalRegisterRequest) -> Hospital:
    """
    Register a hospital together with its first admin account.
    Hospital email and registration number, and admin email, must be unused.
    """
    existing = (
        db.query(Hospital)
        .filter(
            or_(
                Hospital.email == payload.email.lower(),
                Hospital.registration_number == payload.registration_number,
            )
        )
        .first()
    )
    if existing:
        raise HospitalAlreadyRegisteredError("Hospital already registered")

    if db.query(Admin).filter(Admin.email == payload.admin_email.lower()).first():
        raise HospitalAlreadyRegisteredError("Admin email already in use")

    hospital = Hospital(
        name=payload.name,
        email=payload.email.lower(),
        address=payload.address,
        phone=payload.phone,
        registration_number=payload.registration_number,
    )

    try:
        db.add(hospital)
        db.flush()  # assigns hospital.id

        db.add(
            Admin(
                hospital_id=hospital.id,
                name=payload.admin_name,
                email=payload.admin_email.lower(),
                hashed_password=get_password_hash(payload.admin_password),
                role=AdminRole.ADMIN,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(hospital)
    logger.info("Registered hospital %s (%s)", hospital.id, hospital.registration_number)
    return hospital
