from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.hospital_context import HospitalContext, get_hospital_context
from app.schemas.doctor import DoctorCreate, DoctorResponse, DoctorUpdate
from app.services.doctor_service import (
    DoctorNotFoundError,
    DuplicateDoctorError,
    create_doctor,
    deactivate_doctor,
    list_active_doctors,
    update_doctor,
)

router = APIRouter()


@router.get("", response_model=list[DoctorResponse])
def list_doctors_endpoint(
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> list[DoctorResponse]:
    """
    Active doctors of the current hospital, sorted by name.
    """
    doctors = list_active_doctors(db, hospital_id=ctx.hospital.id)
    return [DoctorResponse.model_validate(d) for d in doctors]


@router.post("", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor_endpoint(
    payload: DoctorCreate,
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> DoctorResponse:
    try:
        doctor = create_doctor(db, hospital_id=ctx.hospital.id, payload=payload)
    except DuplicateDoctorError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DoctorResponse.model_validate(doctor)


@router.put("/{doctor_id}", response_model=DoctorResponse)
def update_doctor_endpoint(
    doctor_id: UUID,
    payload: DoctorUpdate,
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> DoctorResponse:
    try:
        doctor = update_doctor(db, hospital_id=ctx.hospital.id, doctor_id=doctor_id, payload=payload)
    except DoctorNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor not found")
    except DuplicateDoctorError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DoctorResponse.model_validate(doctor)


@router.delete("/{doctor_id}")
def delete_doctor_endpoint(
    doctor_id: UUID,
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> dict:
    """
    Soft delete: the doctor is deactivated, existing prescriptions keep
    their letterhead.
    """
    try:
        deactivate_doctor(db, hospital_id=ctx.hospital.id, doctor_id=doctor_id)
    except DoctorNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor not found")
    return {"message": "Doctor deleted successfully"}
