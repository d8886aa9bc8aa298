# app/models/prescription.py
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.utils.datetime_utils import utc_now


class Prescription(Base):
    """
    One version of a prescription.

    Versions are append-only: an edit inserts a new row and flips
    is_latest on the superseded one. Every non-original version points
    to the original row through parent_report_id (flat lineage).
    """

    __tablename__ = "prescriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Human-assigned, shared by every version of a lineage
    prescription_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    doctor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("doctors.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Snapshot blocks, stored with every key present (explicit nulls)
    doctor_info: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    patient_info: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    vitals: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    diagnosis: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    examination: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    complaints: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    history: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    allergy: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    footer_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    valid_till_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Hospital attribution, copied unchanged onto every later version
    hospital_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("hospitals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    hospital_name: Mapped[str] = mapped_column(String(255), nullable=False)
    admin_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("admins.id", ondelete="SET NULL"),
        nullable=True,
    )
    admin_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Version info
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_latest: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    parent_report_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("prescriptions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    # S3 URL, local storage path or data: URI
    pdf_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    medications: Mapped[list["PrescriptionMedication"]] = relationship(
        "PrescriptionMedication",
        order_by="PrescriptionMedication.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class PrescriptionMedication(Base):
    __tablename__ = "prescription_medications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    prescription_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("prescriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 0-based index in the prescription's medication list
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    composition: Mapped[str | None] = mapped_column(String(500), nullable=True)
    morning: Mapped[str | None] = mapped_column(String(20), nullable=True)
    afternoon: Mapped[str | None] = mapped_column(String(20), nullable=True)
    evening: Mapped[str | None] = mapped_column(String(20), nullable=True)
    night: Mapped[str | None] = mapped_column(String(20), nullable=True)
    timing: Mapped[str | None] = mapped_column(String(100), nullable=True)  # e.g. "After food"
    duration: Mapped[str | None] = mapped_column(String(100), nullable=True)  # e.g. "5 days"
    quantity: Mapped[str | None] = mapped_column(String(50), nullable=True)


# At most one latest version per lineage; the lineage key of an original
# version is its own id.
Index(
    "uq_prescriptions_latest_per_lineage",
    func.coalesce(Prescription.parent_report_id, Prescription.id),
    unique=True,
    postgresql_where=text("is_latest"),
    sqlite_where=text("is_latest"),
)
