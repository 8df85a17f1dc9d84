import logging
from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.database import get_db
from backend.models.user import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request."""

    id: int
    role: str
    user: User


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Principal:
    if credentials is None or not credentials.credentials:
        logger.info("Authentication failed: no token provided.")
        raise _unauthorized("Unauthorized: No token provided")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Unauthorized: Token expired.") from exc
    except jwt.PyJWTError as exc:
        logger.info("Authentication failed: %s", exc)
        raise _unauthorized("Unauthorized: Invalid token.") from exc

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or not role or not str(subject).isdigit():
        raise _unauthorized("Unauthorized: Invalid token payload (missing user id or role).")

    user = db.get(User, int(subject))
    if user is None:
        logger.info("Authentication failed: user %s from token not found.", subject)
        raise _unauthorized("Unauthorized: User not found.")

    # Tokens issued before a role change are no longer valid.
    if user.role != role:
        logger.info("Authentication failed: token role %s does not match user %s.", role, user.id)
        raise _unauthorized("Unauthorized: Session is out of date, please sign in again.")

    return Principal(id=user.id, role=user.role, user=user)
