from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.security import decode_token
from app.models.hospital import Admin
from app.schemas.auth import AdminResponse, HospitalSummary, LoginRequest, TokenResponse
from app.services.auth_service import AuthenticationError, authenticate_admin, issue_access_token_for_admin

router = APIRouter()

settings = get_settings()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api_v1_prefix}/auth/login")


def build_admin_response(admin: Admin) -> AdminResponse:
    return AdminResponse(
        id=admin.id,
        name=admin.name,
        email=admin.email,
        role=admin.role.value,
        hospital=HospitalSummary(
            id=admin.hospital.id,
            name=admin.hospital.name,
            address=admin.hospital.address,
        ),
        last_login=admin.last_login,
    )


@router.post("/login", response_model=TokenResponse)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
) -> TokenResponse:
    """
    OAuth2-style login: `username` is the admin email.
    """
    try:
        login_data = LoginRequest(email=form_data.username, password=form_data.password)
        admin = authenticate_admin(db, login_data)
    except (ValidationError, AuthenticationError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        ) from exc

    token = issue_access_token_for_admin(admin)
    return TokenResponse(access_token=token, admin=build_admin_response(admin))


def get_current_admin(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Admin:
    """
    Dependency to retrieve the current admin from a JWT bearer token.
    """
    try:
        payload = decode_token(token)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        )

    admin_id = payload.get("sub")
    if not admin_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        admin = db.query(Admin).filter(Admin.id == UUID(admin_id)).first()
    except ValueError:
        admin = None
    if not admin or not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin not found",
        )

    return admin


@router.get("/me", response_model=AdminResponse)
def read_current_admin(
    current_admin: Admin = Depends(get_current_admin),
) -> AdminResponse:
    """
    Return the current authenticated admin and their hospital.
    """
    return build_admin_response(current_admin)
