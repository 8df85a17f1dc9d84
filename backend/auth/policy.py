"""Role policy for every protected (resource, action) pair.

Ownership rules (a doctor editing only their own profile, a patient
cancelling only their own appointment) are enforced by the handlers; this
table only answers which roles may attempt an action at all.
"""

from fastapi import Depends, HTTPException, status

from backend.auth.dependencies import Principal, get_current_principal
from backend.models.user import ROLES

ADMIN = frozenset({"admin"})
ANY_ROLE = frozenset(ROLES)

POLICY: dict[tuple[str, str], frozenset[str]] = {
    ("auth", "me"): ANY_ROLE,
    ("doctors", "create"): ADMIN,
    ("doctors", "update"): frozenset({"doctor", "admin"}),
    ("doctors", "delete"): ADMIN,
    ("availability", "update"): frozenset({"doctor", "admin"}),
    ("appointments", "book"): frozenset({"patient"}),
    ("appointments", "list_own"): frozenset({"patient", "doctor"}),
    ("appointments", "cancel"): ANY_ROLE,
    ("profile", "read"): ANY_ROLE,
    ("profile", "update"): ANY_ROLE,
    ("users", "list"): ADMIN,
    ("users", "update"): ADMIN,
    ("users", "delete"): ADMIN,
    ("admin", "summary"): ADMIN,
    ("admin", "list_appointments"): ADMIN,
    ("admin", "set_appointment_status"): ADMIN,
    ("admin", "delete_appointment"): ADMIN,
}


def is_allowed(role: str | None, resource: str, action: str) -> bool:
    allowed_roles = POLICY.get((resource, action))
    if allowed_roles is None:
        raise KeyError(f"No policy entry for {resource}:{action}")
    return role in allowed_roles


def require(resource: str, action: str):
    """Dependency factory that resolves the principal and checks the policy table."""
    # Unknown pairs fail at import time rather than on the first request.
    if (resource, action) not in POLICY:
        raise KeyError(f"No policy entry for {resource}:{action}")

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not is_allowed(principal.role, resource, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden: Insufficient permissions",
            )
        return principal

    return dependency
