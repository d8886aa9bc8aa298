# app/services/prescription_version_service.py
"""
Version lineage of prescriptions.

A lineage is the original record plus every record whose parent_report_id
is the original's id. Exactly one record per lineage has is_latest=True,
and it carries the highest version_number:

    new (not persisted) -> latest -> superseded (terminal)

Superseding is done as one transaction: a conditional update that only
succeeds while the record is still latest, followed by the insert of the
next version.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.prescription import Prescription
from app.utils.datetime_utils import is_same_calendar_day, utc_now

logger = logging.getLogger(__name__)


class PrescriptionNotFoundError(Exception):
    pass


class VersionNotFoundError(Exception):
    pass


class EditPermissionError(Exception):
    pass


class EditWindowExpiredError(Exception):
    pass


class VersionConflictError(Exception):
    pass


@dataclass(frozen=True)
class NextVersion:
    version_number: int
    is_latest: bool
    parent_report_id: UUID


def lineage_root_id(prescription: Prescription) -> UUID:
    return prescription.parent_report_id or prescription.id


def ensure_edit_allowed(
    prescription: Prescription,
    *,
    hospital_id: UUID,
    now: datetime | None = None,
) -> None:
    """
    Edits are limited to the hospital that owns the lineage, and to the
    UTC calendar day on which the record being edited was created.
    """
    if prescription.hospital_id != hospital_id:
        raise EditPermissionError("You can only edit prescriptions created by your hospital")

    now = now or utc_now()
    if not is_same_calendar_day(prescription.created_at, now):
        raise EditWindowExpiredError("Editing is only allowed on the same day.")


def next_version_info(prescription: Prescription) -> NextVersion:
    return NextVersion(
        version_number=prescription.version_number + 1,
        is_latest=True,
        parent_report_id=lineage_root_id(prescription),
    )


def supersede_and_append(
    db: Session,
    *,
    current: Prescription,
    new_version: Prescription,
) -> Prescription:
    """
    Mark `current` as superseded and persist `new_version` in one transaction.

    The flip only applies while `current` is still the latest version; a
    concurrent or stale edit therefore fails with VersionConflictError and
    nothing is written.
    """
    current_id = current.id
    try:
        result = db.execute(
            update(Prescription)
            .where(Prescription.id == current_id, Prescription.is_latest.is_(True))
            .values(is_latest=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise VersionConflictError("This prescription has already been superseded by a newer version")

        db.add(new_version)
        db.flush()
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise VersionConflictError("Another version was created for this prescription concurrently") from exc
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(new_version)
    logger.info(
        "Version %s created for prescription %s (lineage %s)",
        new_version.version_number,
        new_version.prescription_id,
        new_version.parent_report_id,
    )
    return new_version


def get_prescription_record(
    db: Session,
    *,
    prescription_id: UUID,
    hospital_id: UUID | None = None,
) -> Prescription:
    query = db.query(Prescription).filter(Prescription.id == prescription_id)
    if hospital_id is not None:
        query = query.filter(Prescription.hospital_id == hospital_id)
    prescription = query.first()
    if not prescription:
        raise PrescriptionNotFoundError("Prescription not found")
    return prescription


def list_versions(
    db: Session,
    *,
    prescription_id: UUID,
    hospital_id: UUID | None = None,
) -> list[Prescription]:
    """
    All versions of the lineage `prescription_id` belongs to, oldest first.
    Any member of the lineage can be used for the lookup.
    """
    prescription = get_prescription_record(db, prescription_id=prescription_id, hospital_id=hospital_id)
    root_id = lineage_root_id(prescription)
    return (
        db.query(Prescription)
        .filter(or_(Prescription.id == root_id, Prescription.parent_report_id == root_id))
        .order_by(Prescription.version_number.asc())
        .all()
    )


def get_version(
    db: Session,
    *,
    prescription_id: UUID,
    version_number: int,
    hospital_id: UUID | None = None,
) -> Prescription:
    prescription = get_prescription_record(db, prescription_id=prescription_id, hospital_id=hospital_id)
    root_id = lineage_root_id(prescription)
    version = (
        db.query(Prescription)
        .filter(
            or_(Prescription.id == root_id, Prescription.parent_report_id == root_id),
            Prescription.version_number == version_number,
        )
        .first()
    )
    if not version:
        raise VersionNotFoundError("Version not found")
    return version
