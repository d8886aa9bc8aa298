#!/usr/bin/env python3
# scripts/seed_demo_data.py
"""
Demo data seeder (2 hospitals) + reset.

Per hospital:
- 1 admin with known password Demo@12345
- 3 doctors
- a few prescriptions, one of them edited once so the version history
  endpoints have something to show

Demo rows are found again through their registration numbers, so --reset
never touches real hospitals.

Run:
  python -m scripts.seed_demo_data --seed
  python -m scripts.seed_demo_data --reset
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

# Allow "python -m scripts.seed_demo_data" from repo root
REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT))

from app.core.database import SessionLocal  # type: ignore
from app.models.doctor import Doctor  # type: ignore
from app.models.hospital import Admin, Hospital  # type: ignore
from app.models.prescription import Prescription, PrescriptionMedication  # type: ignore
from app.schemas.doctor import DoctorCreate  # type: ignore
from app.schemas.hospital import HospitalRegisterRequest  # type: ignore
from app.schemas.prescription import PrescriptionCreate, PrescriptionUpdate  # type: ignore
from app.services.doctor_service import create_doctor  # type: ignore
from app.services.hospital_service import register_hospital  # type: ignore
from app.services.prescription_service import create_prescription, update_prescription  # type: ignore

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "Demo@12345"


@dataclass(frozen=True)
class DemoHospitalSpec:
    suffix: str
    name: str
    registration_number: str
    address: str
    phone: str

    @property
    def email(self) -> str:
        return f"contact.{self.suffix.lower()}@demo-hospital.example.com"

    @property
    def admin_email(self) -> str:
        return f"admin.{self.suffix.lower()}@demo-hospital.example.com"


DEMO_HOSPITALS = [
    DemoHospitalSpec(
        suffix="A",
        name="Sunrise Multispeciality Hospital",
        registration_number="DEMO-HOSP-A-001",
        address="12 MG Road, Bengaluru, Karnataka 560001",
        phone="+91 80 4000 1001",
    ),
    DemoHospitalSpec(
        suffix="B",
        name="Riverside Care Clinic",
        registration_number="DEMO-HOSP-B-001",
        address="45 Park Street, Kolkata, West Bengal 700016",
        phone="+91 33 4000 2002",
    ),
]

DEMO_DOCTORS = [
    ("Anjali Rao", "MBBS, MD", "General Medicine"),
    ("Vikram Sen", "MBBS, DNB", "Cardiology"),
    ("Meera Iyer", "MBBS, DCH", "Paediatrics"),
]

DEMO_MEDICATIONS = [
    ("Paracetamol 650", "Paracetamol 650mg", "1", "0", "0", "1", "After food", "5 days", "10"),
    ("Pantoprazole 40", "Pantoprazole 40mg", "1", "0", "0", "0", "Before food", "14 days", "14"),
    ("Cetirizine 10", "Cetirizine 10mg", "0", "0", "0", "1", "After food", "5 days", "5"),
    ("Amoxicillin 500", "Amoxicillin 500mg", "1", "1", "0", "1", "After food", "7 days", "21"),
    ("Vitamin D3 60K", "Cholecalciferol 60000 IU", "1", "0", "0", "0", "After food", "8 weeks", "8"),
    ("ORS", "Oral rehydration salts", "1", "1", "1", "1", "", "3 days", "12"),
    ("Montelukast 10", "Montelukast 10mg", "0", "0", "0", "1", "After food", "10 days", "10"),
    ("Azithromycin 500", "Azithromycin 500mg", "1", "0", "0", "0", "Before food", "3 days", "3"),
    ("Domperidone 10", "Domperidone 10mg", "1", "1", "1", "0", "Before food", "5 days", "15"),
]


def _medications(count: int) -> list[dict]:
    keys = ("name", "composition", "morning", "afternoon", "evening", "night", "timing", "duration", "quantity")
    return [dict(zip(keys, DEMO_MEDICATIONS[i % len(DEMO_MEDICATIONS)])) for i in range(count)]


def _prescription_payload(spec: DemoHospitalSpec, doctor: Doctor, index: int, medication_count: int) -> dict:
    return {
        "prescription_id": f"RX-{spec.suffix}-{index:04d}",
        "doctor_id": str(doctor.id),
        "patient_info": {
            "name": ["Ravi Kumar", "Sneha Patil", "Arjun Das", "Kavya Nair"][index % 4],
            "age": 24 + index * 7,
            "gender": "F" if index % 2 else "M",
            "patient_id": f"PT-{spec.suffix}-{1000 + index}",
        },
        "vitals": {"height": 170, "weight": 68.5, "temp": 98.6, "hr": 76, "bp": "120/80"},
        "diagnosis": {"current": "Acute upper respiratory infection", "current_icd": "J06.9"},
        "complaints": {"symptoms": "Fever, sore throat", "duration": "3 days"},
        "examination": {"other_findings": "Mild pharyngeal congestion"},
        "instructions": "Drink plenty of fluids. Review if fever persists beyond 3 days.",
        "medications": _medications(medication_count),
    }


def seed_one_hospital(db: Session, spec: DemoHospitalSpec) -> None:
    if db.query(Hospital).filter(Hospital.registration_number == spec.registration_number).first():
        logger.info("Hospital %s already seeded, skipping.", spec.registration_number)
        return

    hospital = register_hospital(
        db,
        HospitalRegisterRequest(
            name=spec.name,
            email=spec.email,
            address=spec.address,
            phone=spec.phone,
            registration_number=spec.registration_number,
            admin_name=f"Demo Admin {spec.suffix}",
            admin_email=spec.admin_email,
            admin_password=DEMO_PASSWORD,
        ),
    )
    admin = db.query(Admin).filter(Admin.hospital_id == hospital.id).first()

    doctors = [
        create_doctor(
            db,
            hospital_id=hospital.id,
            payload=DoctorCreate(
                name=name,
                qualification=qualification,
                specialization=specialization,
                regd_no=f"KMC-{spec.suffix}-{i + 1:05d}",
                clinic_address=spec.address,
            ),
        )
        for i, (name, qualification, specialization) in enumerate(DEMO_DOCTORS)
    ]

    # 3, 8 and 12 medications: one, two and two pages
    created = []
    for index, medication_count in enumerate((3, 8, 12), start=1):
        payload = PrescriptionCreate(**_prescription_payload(spec, doctors[index % len(doctors)], index, medication_count))
        created.append(create_prescription(db, hospital=hospital, admin=admin, payload=payload))

    edited = _prescription_payload(spec, doctors[1], 1, 4)
    edited["notes"] = "Dose of Paracetamol reduced after review."
    update_prescription(db, prescription_id=created[0].id, hospital=hospital, payload=PrescriptionUpdate(**edited))

    logger.info(
        "Seeded %s: admin %s / %s, %d doctors, %d prescriptions",
        spec.name,
        spec.admin_email,
        DEMO_PASSWORD,
        len(doctors),
        len(created),
    )


def reset_one_hospital(db: Session, spec: DemoHospitalSpec) -> None:
    hospital = db.query(Hospital).filter(Hospital.registration_number == spec.registration_number).first()
    if not hospital:
        logger.info("Hospital %s not found, skipping reset.", spec.registration_number)
        return

    prescription_ids = [p.id for p in db.query(Prescription.id).filter(Prescription.hospital_id == hospital.id)]
    try:
        if prescription_ids:
            db.query(PrescriptionMedication).filter(
                PrescriptionMedication.prescription_id.in_(prescription_ids)
            ).delete(synchronize_session=False)
            # Newer versions reference the original through parent_report_id
            db.query(Prescription).filter(
                Prescription.hospital_id == hospital.id,
                Prescription.parent_report_id.is_not(None),
            ).delete(synchronize_session=False)
            db.query(Prescription).filter(Prescription.hospital_id == hospital.id).delete(synchronize_session=False)
        db.query(Doctor).filter(Doctor.hospital_id == hospital.id).delete(synchronize_session=False)
        db.query(Admin).filter(Admin.hospital_id == hospital.id).delete(synchronize_session=False)
        db.delete(hospital)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Reset demo hospital %s", spec.registration_number)


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed / reset demo hospitals, doctors and prescriptions")
    parser.add_argument("--seed", action="store_true", help="Seed demo hospitals with doctors and prescriptions")
    parser.add_argument("--reset", action="store_true", help="Delete demo hospitals and everything they own")
    args = parser.parse_args()

    if not (args.seed or args.reset):
        parser.print_help()
        raise SystemExit(1)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    for spec in DEMO_HOSPITALS:
        db: Session = SessionLocal()
        try:
            if args.reset:
                reset_one_hospital(db, spec)
            if args.seed:
                seed_one_hospital(db, spec)
        finally:
            db.close()


if __name__ == "__main__":
    main()
