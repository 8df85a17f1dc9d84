import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import Principal
from backend.auth.passwords import verify_password
from backend.auth.policy import require
from backend.core import config
from backend.core.rate_limit import check_login_allowed, limiter, record_failed_login
from backend.database import get_db
from backend.models.user import ROLES, User
from backend.services import directory

router = APIRouter(tags=["auth"])

logger = logging.getLogger(__name__)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: str
    name: str | None = None
    image: str | None = None
    location: str | None = None

    class Config:
        from_attributes = True


class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str
    role: str
    specialization: str | None = None
    name: str | None = None
    image: str | None = None
    location: str | None = None

    @field_validator("username", "password")
    @classmethod
    def validate_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Field is required.")
        return value.strip()

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if "@" not in normalized:
            raise ValueError("A valid email is required.")
        return normalized

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}.")
        return normalized

    @field_validator("specialization")
    @classmethod
    def validate_specialization(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class LoginRequest(BaseModel):
    username: str | None = None
    password: str | None = None


class AuthResponse(BaseModel):
    message: str | None = None
    token: str
    user: UserResponse


class MeResponse(BaseModel):
    id: int
    role: str
    username: str


def issue_token(user: User) -> str:
    return jwt_handler.create_access_token(subject=str(user.id), role=user.role)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(config.REGISTER_RATE_LIMIT)
def register(request: Request, data: RegisterRequest, db: Session = Depends(get_db)):
    logger.info("Registration attempt for username=%s role=%s", data.username, data.role)
    user = directory.register_user(
        db,
        username=data.username,
        email=data.email,
        password=data.password,
        role=data.role,
        specialization=data.specialization,
        name=data.name,
        image=data.image,
        location=data.location,
    )

    return AuthResponse(
        message="Registration successful!",
        token=issue_token(user),
        user=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(request: Request, data: LoginRequest, db: Session = Depends(get_db)):
    check_login_allowed(request)

    if not data.username or not data.password:
        record_failed_login(request)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing credentials")

    user = db.query(User).filter(User.username == data.username.strip()).first()
    if user is None or not verify_password(data.password, user.hashed_password):
        logger.info("Failed login for username=%s", data.username)
        record_failed_login(request)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    return AuthResponse(token=issue_token(user), user=UserResponse.model_validate(user))


@router.get("/me", response_model=MeResponse)
def me(principal: Principal = Depends(require("auth", "me"))):
    return MeResponse(id=principal.id, role=principal.role, username=principal.user.username)
