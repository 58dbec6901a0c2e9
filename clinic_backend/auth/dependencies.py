from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from clinic_backend.auth import jwt_handler
from clinic_backend.database import get_db
from clinic_backend.models.clinic import Clinic
from clinic_backend.models.user import ClinicUser, User

security = HTTPBearer()

PLATFORM_ADMIN_ROLE = "ADMIN"
CLINIC_MANAGER_ROLE = "CLINIC_MANAGER"


@dataclass(frozen=True)
class ClinicContext:
    clinic_id: int
    user: User
    role: str


def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    try:
        return jwt_handler.decode_access_token(credentials.credentials)
    except jwt_handler.TokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: Session = Depends(get_db),
) -> User:
    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")

    user = db.query(User).filter(User.email == email).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_clinic_context(
    x_clinic_id: int | None = Header(default=None),
    payload: dict = Depends(get_token_payload),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ClinicContext:
    """Resolve which clinic a request acts on.

    Platform admins must name the clinic in ``x-clinic-id``. Other users may omit
    it when their token or memberships leave exactly one choice.
    """
    if user.role == PLATFORM_ADMIN_ROLE:
        if x_clinic_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="x-clinic-id header is required")
        if db.get(Clinic, x_clinic_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Clinic not found")
        return ClinicContext(clinic_id=x_clinic_id, user=user, role=PLATFORM_ADMIN_ROLE)

    memberships = {
        membership.clinic_id: membership
        for membership in db.query(ClinicUser).filter(
            ClinicUser.user_id == user.id,
            ClinicUser.is_active.is_(True),
        ).all()
    }

    clinic_id = x_clinic_id
    if clinic_id is None:
        claimed = [claimed_id for claimed_id in payload.get("clinics", []) if claimed_id in memberships]
        candidates = claimed or list(memberships)
        if len(candidates) != 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="x-clinic-id header is required")
        clinic_id = candidates[0]

    membership = memberships.get(clinic_id)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No access to this clinic")
    return ClinicContext(clinic_id=clinic_id, user=user, role=membership.role)


def require_manager(context: ClinicContext = Depends(get_clinic_context)) -> ClinicContext:
    if context.role not in (CLINIC_MANAGER_ROLE, PLATFORM_ADMIN_ROLE):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Manager role required")
    return context


def require_platform_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != PLATFORM_ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Platform admin role required")
    return user
