# app/core/hospital_context.py
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.v1.endpoints.auth import get_current_admin
from app.core.database import get_db
from app.models.hospital import Admin, Hospital


class HospitalContext:
    """
    Wraps the current hospital and admin for hospital-scoped operations.

    - hospital: the hospital the authenticated admin belongs to
    - admin:    current authenticated admin
    """

    def __init__(self, hospital: Hospital, admin: Admin):
        self.hospital = hospital
        self.admin = admin


def get_hospital_context(
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
) -> HospitalContext:
    """
    Resolve the hospital of the current admin. Only active hospitals can
    use hospital-scoped endpoints.
    """
    hospital = db.get(Hospital, current_admin.hospital_id)
    if not hospital:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Hospital not found.",
        )

    if not hospital.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Hospital account is inactive. Please contact support.",
        )

    return HospitalContext(hospital=hospital, admin=current_admin)
