# app/api/v1/endpoints/prescriptions.py
from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.hospital_context import HospitalContext, get_hospital_context
from app.schemas.prescription import PrescriptionCreate, PrescriptionResponse, PrescriptionUpdate
from app.services.doctor_service import DoctorNotFoundError
from app.services.prescription_service import (
    PrescriptionValidationError,
    build_prescription_response,
    create_prescription,
    get_prescription,
    list_latest_prescriptions,
    render_prescription_download,
    update_prescription,
)
from app.services.prescription_version_service import (
    EditPermissionError,
    EditWindowExpiredError,
    PrescriptionNotFoundError,
    VersionConflictError,
    VersionNotFoundError,
    get_version,
    list_versions,
)
from app.utils.prescription_pdf import RenderError, RenderTimeoutError, build_pdf_filename

router = APIRouter()
logger = logging.getLogger(__name__)


def _render_error_to_http(exc: RenderError) -> HTTPException:
    if isinstance(exc, RenderTimeoutError):
        detail = "PDF generation timeout. Please try again."
    else:
        detail = "PDF generation failed."
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


@router.post("", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
def create_prescription_endpoint(
    payload: PrescriptionCreate,
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> PrescriptionResponse:
    """
    Create a prescription (version 1) and render its PDF.
    """
    try:
        prescription = create_prescription(db, hospital=ctx.hospital, admin=ctx.admin, payload=payload)
    except PrescriptionValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DoctorNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor not found")
    except RenderError as e:
        logger.error("PDF generation failed for new prescription: %s", e, exc_info=True)
        raise _render_error_to_http(e)
    except SQLAlchemyError as e:
        logger.error("SQLAlchemy error creating prescription: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error creating prescription",
        )

    return build_prescription_response(prescription)


@router.get("", response_model=list[PrescriptionResponse])
def list_prescriptions_endpoint(
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> list[PrescriptionResponse]:
    """
    Latest version of every prescription of the current hospital, newest first.
    """
    prescriptions = list_latest_prescriptions(db, hospital_id=ctx.hospital.id)
    return [build_prescription_response(p) for p in prescriptions]


@router.get("/{prescription_id}", response_model=PrescriptionResponse)
def get_prescription_endpoint(
    prescription_id: UUID,
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> PrescriptionResponse:
    try:
        prescription = get_prescription(db, prescription_id=prescription_id, hospital_id=ctx.hospital.id)
    except PrescriptionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescription not found")
    return build_prescription_response(prescription)


@router.put("/{prescription_id}", response_model=PrescriptionResponse)
def update_prescription_endpoint(
    prescription_id: UUID,
    payload: PrescriptionUpdate,
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> PrescriptionResponse:
    """
    Edit a prescription. The edit is stored as a new version; the
    previous version stays readable through /versions.

    - Only the hospital that created the prescription may edit it.
    - Only on the same (UTC) calendar day the edited version was created.
    """
    try:
        prescription = update_prescription(
            db,
            prescription_id=prescription_id,
            hospital=ctx.hospital,
            payload=payload,
        )
    except PrescriptionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescription not found")
    except (EditPermissionError, EditWindowExpiredError) as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except PrescriptionValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DoctorNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor not found")
    except VersionConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RenderError as e:
        logger.error("PDF generation failed for prescription %s: %s", prescription_id, e, exc_info=True)
        raise _render_error_to_http(e)
    except SQLAlchemyError as e:
        logger.error("SQLAlchemy error updating prescription %s: %s", prescription_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error updating prescription",
        )

    return build_prescription_response(prescription)


@router.get("/{prescription_id}/versions", response_model=list[PrescriptionResponse])
def list_versions_endpoint(
    prescription_id: UUID,
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> list[PrescriptionResponse]:
    """
    Full version history, oldest first. Any version's id can be used.
    """
    try:
        versions = list_versions(db, prescription_id=prescription_id, hospital_id=ctx.hospital.id)
    except PrescriptionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescription not found")
    return [build_prescription_response(v) for v in versions]


@router.get("/{prescription_id}/versions/{version_number}", response_model=PrescriptionResponse)
def get_version_endpoint(
    prescription_id: UUID,
    version_number: int,
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> PrescriptionResponse:
    try:
        version = get_version(
            db,
            prescription_id=prescription_id,
            version_number=version_number,
            hospital_id=ctx.hospital.id,
        )
    except (PrescriptionNotFoundError, VersionNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return build_prescription_response(version)


@router.get("/{prescription_id}/download/{page_format}")
def download_prescription_pdf(
    prescription_id: UUID,
    page_format: str,
    db: Session = Depends(get_db),
    ctx: HospitalContext = Depends(get_hospital_context),
) -> Response:
    """
    Regenerate and download the PDF of a version in A4 or A5.
    Unknown formats fall back to the default page size.
    """
    try:
        prescription, fmt, pdf_buffer = render_prescription_download(
            db,
            prescription_id=prescription_id,
            hospital_id=ctx.hospital.id,
            page_format=page_format,
        )
    except PrescriptionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescription not found")
    except RenderError as e:
        logger.error("PDF download failed for prescription %s: %s", prescription_id, e, exc_info=True)
        raise _render_error_to_http(e)

    filename = build_pdf_filename(prescription.prescription_id, fmt)
    return Response(
        content=pdf_buffer.getvalue(),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
