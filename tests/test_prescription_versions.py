from datetime import timedelta

import pytest

from app.models.prescription import Prescription
from app.schemas.prescription import PrescriptionCreate, PrescriptionUpdate
from app.services.prescription_service import (
    PrescriptionValidationError,
    create_prescription,
    list_latest_prescriptions,
    update_prescription,
)
from app.services.prescription_version_service import (
    EditPermissionError,
    EditWindowExpiredError,
    VersionConflictError,
    VersionNotFoundError,
    get_version,
    list_versions,
    supersede_and_append,
)
from app.utils.datetime_utils import utc_now
from app.utils.prescription_pdf import RenderError
from conftest import FailingRenderer, create_hospital_with_admin, prescription_payload


def _lineage(db, root_id):
    db.expire_all()
    return (
        db.query(Prescription)
        .filter((Prescription.id == root_id) | (Prescription.parent_report_id == root_id))
        .order_by(Prescription.version_number)
        .all()
    )


def _create(db, hospital, admin, renderer, now=None):
    payload = PrescriptionCreate(**prescription_payload())
    return create_prescription(db, hospital=hospital, admin=admin, payload=payload, renderer=renderer, now=now)


def test_create_sets_version_one(db_session, blank_renderer):
    hospital, admin = create_hospital_with_admin(db_session)
    prescription = _create(db_session, hospital, admin, blank_renderer)

    assert prescription.version_number == 1
    assert prescription.is_latest is True
    assert prescription.parent_report_id is None
    assert prescription.hospital_id == hospital.id
    assert prescription.admin_name == admin.name
    assert prescription.pdf_url.startswith("data:application/pdf;base64,")
    assert [m.name for m in prescription.medications] == ["Med 01", "Med 02", "Med 03"]


def test_create_requires_prescription_id_and_patient_name(db_session, blank_renderer):
    hospital, admin = create_hospital_with_admin(db_session)
    payload = prescription_payload(prescription_id="  ")
    with pytest.raises(PrescriptionValidationError):
        create_prescription(
            db_session, hospital=hospital, admin=admin, payload=PrescriptionCreate(**payload), renderer=blank_renderer
        )
    assert db_session.query(Prescription).count() == 0


def test_chained_edits_keep_single_latest_and_flat_lineage(db_session, blank_renderer):
    hospital, admin = create_hospital_with_admin(db_session)
    original = _create(db_session, hospital, admin, blank_renderer)
    root_id = original.id

    current = original
    for edit in range(1, 4):
        payload = PrescriptionUpdate(**prescription_payload(medication_count=3 + edit))
        current = update_prescription(
            db_session, prescription_id=current.id, hospital=hospital, payload=payload, renderer=blank_renderer
        )

    versions = _lineage(db_session, root_id)
    assert [v.version_number for v in versions] == [1, 2, 3, 4]
    assert [v.is_latest for v in versions] == [False, False, False, True]
    assert all(v.parent_report_id == root_id for v in versions[1:])
    assert all(v.hospital_id == hospital.id and v.hospital_name == hospital.name for v in versions)
    assert len(versions[-1].medications) == 6
    # Superseded versions keep their own content
    assert len(versions[0].medications) == 3

    latest = list_latest_prescriptions(db_session, hospital_id=hospital.id)
    assert [p.id for p in latest] == [versions[-1].id]


def test_version_lookups_from_any_member(db_session, blank_renderer):
    hospital, admin = create_hospital_with_admin(db_session)
    original = _create(db_session, hospital, admin, blank_renderer)
    second = update_prescription(
        db_session,
        prescription_id=original.id,
        hospital=hospital,
        payload=PrescriptionUpdate(**prescription_payload(notes="changed")),
        renderer=blank_renderer,
    )

    assert [v.version_number for v in list_versions(db_session, prescription_id=second.id)] == [1, 2]
    assert get_version(db_session, prescription_id=second.id, version_number=1).id == original.id
    assert get_version(db_session, prescription_id=original.id, version_number=2).notes == "changed"
    with pytest.raises(VersionNotFoundError):
        get_version(db_session, prescription_id=original.id, version_number=3)


def test_edit_from_other_hospital_is_rejected(db_session, blank_renderer):
    hospital, admin = create_hospital_with_admin(db_session, "a")
    other_hospital, _ = create_hospital_with_admin(db_session, "b")
    original = _create(db_session, hospital, admin, blank_renderer)

    with pytest.raises(EditPermissionError):
        update_prescription(
            db_session,
            prescription_id=original.id,
            hospital=other_hospital,
            payload=PrescriptionUpdate(**prescription_payload()),
            renderer=blank_renderer,
        )

    versions = _lineage(db_session, original.id)
    assert len(versions) == 1
    assert versions[0].is_latest is True


def test_edit_on_a_later_day_is_rejected(db_session, blank_renderer):
    hospital, admin = create_hospital_with_admin(db_session)
    yesterday = utc_now() - timedelta(days=1)
    original = _create(db_session, hospital, admin, blank_renderer, now=yesterday)

    with pytest.raises(EditWindowExpiredError):
        update_prescription(
            db_session,
            prescription_id=original.id,
            hospital=hospital,
            payload=PrescriptionUpdate(**prescription_payload()),
            renderer=blank_renderer,
        )

    assert len(_lineage(db_session, original.id)) == 1


def test_edit_window_uses_utc_calendar_day(db_session, blank_renderer):
    hospital, admin = create_hospital_with_admin(db_session)
    created_at = utc_now().replace(hour=23, minute=59, second=0, microsecond=0) - timedelta(days=1)
    original = _create(db_session, hospital, admin, blank_renderer, now=created_at)

    just_after_midnight = created_at + timedelta(minutes=2)
    with pytest.raises(EditWindowExpiredError):
        update_prescription(
            db_session,
            prescription_id=original.id,
            hospital=hospital,
            payload=PrescriptionUpdate(**prescription_payload()),
            now=just_after_midnight,
            renderer=blank_renderer,
        )


def test_render_failure_leaves_lineage_untouched(db_session, blank_renderer):
    hospital, admin = create_hospital_with_admin(db_session)
    original = _create(db_session, hospital, admin, blank_renderer)

    with pytest.raises(RenderError):
        update_prescription(
            db_session,
            prescription_id=original.id,
            hospital=hospital,
            payload=PrescriptionUpdate(**prescription_payload()),
            renderer=FailingRenderer(),
        )

    versions = _lineage(db_session, original.id)
    assert len(versions) == 1
    assert versions[0].is_latest is True
    assert versions[0].version_number == 1


def test_render_failure_on_create_persists_nothing(db_session):
    hospital, admin = create_hospital_with_admin(db_session)
    with pytest.raises(RenderError):
        _create(db_session, hospital, admin, FailingRenderer())
    assert db_session.query(Prescription).count() == 0


def test_editing_a_superseded_version_conflicts(db_session, blank_renderer, caplog):
    hospital, admin = create_hospital_with_admin(db_session)
    original = _create(db_session, hospital, admin, blank_renderer)
    original_id = original.id
    update_prescription(
        db_session,
        prescription_id=original_id,
        hospital=hospital,
        payload=PrescriptionUpdate(**prescription_payload()),
        renderer=blank_renderer,
    )

    caplog.set_level("WARNING", logger="app.services.prescription_service")
    with pytest.raises(VersionConflictError):
        update_prescription(
            db_session,
            prescription_id=original_id,
            hospital=hospital,
            payload=PrescriptionUpdate(**prescription_payload()),
            renderer=blank_renderer,
        )
    assert "Orphaned PDF for rejected version of RX-0001" in caplog.text

    versions = _lineage(db_session, original_id)
    assert [v.version_number for v in versions] == [1, 2]
    assert [v.is_latest for v in versions] == [False, True]


def test_second_latest_in_a_lineage_is_rejected_by_the_database(db_session, blank_renderer):
    hospital, admin = create_hospital_with_admin(db_session)
    first = _create(db_session, hospital, admin, blank_renderer)
    second = _create(db_session, hospital, admin, blank_renderer)
    first_id, second_id = first.id, second.id

    # A version of `first` that claims to belong to the lineage of `second`,
    # which already has its latest record: the flip of `first` succeeds, the
    # insert hits the latest-per-lineage index.
    intruder = Prescription(
        prescription_id="RX-0001",
        hospital_id=hospital.id,
        hospital_name=hospital.name,
        admin_id=admin.id,
        admin_name=admin.name,
        version_number=2,
        is_latest=True,
        parent_report_id=second_id,
    )

    with pytest.raises(VersionConflictError):
        supersede_and_append(db_session, current=first, new_version=intruder)

    first_lineage = _lineage(db_session, first_id)
    second_lineage = _lineage(db_session, second_id)
    assert [(v.version_number, v.is_latest) for v in first_lineage] == [(1, True)]
    assert [(v.version_number, v.is_latest) for v in second_lineage] == [(1, True)]
