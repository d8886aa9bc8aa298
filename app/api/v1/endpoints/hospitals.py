import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.hospital import HospitalRegisterRequest, HospitalResponse
from app.services.hospital_service import HospitalAlreadyRegisteredError, register_hospital

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/register",
    response_model=HospitalResponse,
    status_code=status.HTTP_201_CREATED,
)
def hospital_register(
    payload: HospitalRegisterRequest,
    db: Session = Depends(get_db),
) -> HospitalResponse:
    """
    Hospital self-registration.

    - Hospital email and registration number must be unique.
    - Creates the hospital and its first admin account.
    """
    try:
        hospital = register_hospital(db, payload)
    except HospitalAlreadyRegisteredError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except SQLAlchemyError as e:
        logger.error("SQLAlchemy error registering hospital: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error registering hospital",
        )

    return HospitalResponse.model_validate(hospital)
