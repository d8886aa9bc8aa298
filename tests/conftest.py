import os

# Settings are read at import time of the app modules
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("PDF_STORAGE_BACKEND", "inline")

from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfWriter
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import get_db
from app.main import app
from app.models.base import Base
from app.models.hospital import Admin
from app.schemas.hospital import HospitalRegisterRequest
from app.services.hospital_service import register_hospital
from app.utils.prescription_pdf import PAGE_SIZES

ADMIN_PASSWORD = "Secret@123"


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def hospital_payload(suffix: str = "a") -> dict:
    return {
        "name": f"City Hospital {suffix.upper()}",
        "email": f"contact.{suffix}@hospital.example.com",
        "address": f"{suffix.upper()} Street 1, Pune",
        "phone": "+91 20 5555 0101",
        "registration_number": f"REG-{suffix.upper()}-001",
        "admin_name": f"Admin {suffix.upper()}",
        "admin_email": f"admin.{suffix}@hospital.example.com",
        "admin_password": ADMIN_PASSWORD,
    }


def create_hospital_with_admin(db, suffix: str = "a"):
    hospital = register_hospital(db, HospitalRegisterRequest(**hospital_payload(suffix)))
    admin = db.query(Admin).filter(Admin.hospital_id == hospital.id).one()
    return hospital, admin


def register_and_login(client, suffix: str = "a") -> dict:
    """Register a hospital through the API and return auth headers for its admin."""
    payload = hospital_payload(suffix)
    response = client.post("/api/v1/hospitals/register", json=payload)
    assert response.status_code == 201, response.text

    response = client.post(
        "/api/v1/auth/login",
        data={"username": payload["admin_email"], "password": ADMIN_PASSWORD},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def make_medications(count: int) -> list[dict]:
    return [
        {
            "name": f"Med {i:02d}",
            "composition": f"Compound {i:02d}",
            "morning": "1",
            "afternoon": None,
            "evening": "1",
            "night": None,
            "timing": None,
            "duration": "5 days",
            "quantity": "10",
        }
        for i in range(1, count + 1)
    ]


def prescription_payload(medication_count: int = 3, **overrides) -> dict:
    payload = {
        "prescription_id": "RX-0001",
        "doctor_info": {
            "name": "Asha Mehta",
            "qualification": "MBBS, MD",
            "specialization": "General Medicine",
            "regd_no": "MMC-12345",
            "clinic_address": "Shop 4, Lake Road, Pune",
        },
        "patient_info": {"name": "Rahul Verma", "age": 42, "gender": "M", "patient_id": "PT-778"},
        "vitals": {"height": 172, "weight": 70.5, "temp": 98.4, "hr": 72, "bp": "120/80"},
        "diagnosis": {"current": "Viral fever", "current_icd": "B34.9", "known": "Hypertension"},
        "complaints": {"symptoms": "Fever and body ache", "duration": "2 days"},
        "instructions": "Take rest and drink fluids.",
        "medications": make_medications(medication_count),
    }
    payload.update(overrides)
    return payload


class BlankPageRenderer:
    """Fast stand-in for the reportlab renderer: one blank page per call."""

    def __init__(self):
        self.pages = []

    def render_page(self, prescription_data, page, page_format):
        self.pages.append(page)
        writer = PdfWriter()
        width, height = PAGE_SIZES[page_format]
        writer.add_blank_page(width=width, height=height)
        buffer = BytesIO()
        writer.write(buffer)
        return buffer.getvalue()


class FailingRenderer:
    def render_page(self, prescription_data, page, page_format):
        raise RuntimeError("renderer crashed")


@pytest.fixture()
def blank_renderer():
    return BlankPageRenderer()
