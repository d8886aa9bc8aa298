import logging

from sqlalchemy.orm import Session

from app.core.security import create_access_token, verify_password
from app.models.hospital import Admin
from app.schemas.auth import LoginRequest
from app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    pass


def get_admin_by_email(db: Session, email: str) -> Admin | None:
    return db.query(Admin).filter(Admin.email == email.lower()).first()


def authenticate_admin(db: Session, login_data: LoginRequest) -> Admin:
    """
    Authenticate an admin by email and password and record the login time.
    Inactive admins and admins of inactive hospitals cannot log in.
    """
    admin = get_admin_by_email(db, login_data.email)
    if not admin or not admin.is_active or not admin.hospital.is_active:
        raise AuthenticationError("Invalid credentials")

    if not verify_password(login_data.password, admin.hashed_password):
        raise AuthenticationError("Invalid credentials")

    admin.last_login = utc_now()
    db.commit()
    db.refresh(admin)
    logger.info("Admin %s logged in for hospital %s", admin.id, admin.hospital_id)
    return admin


def issue_access_token_for_admin(admin: Admin) -> str:
    return create_access_token(
        subject=str(admin.id),
        hospital_id=str(admin.hospital_id),
        role=admin.role.value,
        name=admin.name,
    )
