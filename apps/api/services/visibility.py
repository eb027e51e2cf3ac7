"""Role-based visibility and mutation rules for programs."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from services.errors import ForbiddenError

ROLE_ADMIN = "admin"
ROLE_EDITOR = "editor"
ROLE_VIEWER = "viewer"
ROLE_ANONYMOUS = "anonymous"
KNOWN_ROLES = (ROLE_ADMIN, ROLE_EDITOR, ROLE_VIEWER, ROLE_ANONYMOUS)

ELEVATED_ROLES = frozenset({ROLE_ADMIN, ROLE_EDITOR})
PUBLIC_STATUS = "published"


def normalize_role(role: Optional[str]) -> str:
    value = str(role or "").strip().lower()
    return value if value in KNOWN_ROLES else ROLE_ANONYMOUS


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def status_filter_for(caller_role: Optional[str]) -> Optional[str]:
    """Status equality filter a list query must carry for this role, if any."""
    if normalize_role(caller_role) in ELEVATED_ROLES:
        return None
    return PUBLIC_STATUS


def is_visible(caller_role: Optional[str], record: Any, caller_id: Optional[str] = None) -> bool:
    """Whether the caller may observe record. caller_id does not widen read access."""
    if normalize_role(caller_role) in ELEVATED_ROLES:
        return True
    return _field(record, "status") == PUBLIC_STATUS


def can_create(caller_role: Optional[str]) -> bool:
    return normalize_role(caller_role) in ELEVATED_ROLES


def can_mutate(caller_role: Optional[str], record: Any, caller_id: Optional[str]) -> bool:
    """Admins mutate anything; editors only what they created; nobody else mutates."""
    role = normalize_role(caller_role)
    if role == ROLE_ADMIN:
        return True
    if role == ROLE_EDITOR:
        owner = _field(record, "created_by")
        return bool(caller_id) and owner == caller_id
    return False


def ensure_can_create(caller_role: Optional[str]) -> None:
    if not can_create(caller_role):
        raise ForbiddenError("Viewers cannot create programs.")


def ensure_can_mutate(caller_role: Optional[str], record: Any, caller_id: Optional[str], action: str) -> None:
    if can_mutate(caller_role, record, caller_id):
        return
    if normalize_role(caller_role) == ROLE_EDITOR:
        raise ForbiddenError(f"You can only {action} your own programs.")
    raise ForbiddenError(f"Your role cannot {action} programs.")
