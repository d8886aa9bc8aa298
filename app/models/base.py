# app/models/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all ORM models.

    Hospital-owned rows (admins, doctors, prescriptions) live in the same
    tables for every hospital and carry a hospital_id column.
    """

    pass
