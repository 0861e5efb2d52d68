"""Identity helpers for requests authenticated by the upstream gateway."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status


@dataclass(frozen=True)
class CurrentUser:
    """Caller identity as asserted by the gateway headers."""

    id: str
    role: str

    @property
    def teacher_id(self) -> int:
        try:
            return int(self.id)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Caller is not linked to a teacher record",
            ) from exc


def get_current_user(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> CurrentUser:
    """Return the caller described by ``X-User-Id`` and ``X-User-Role``."""

    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    return CurrentUser(id=x_user_id.strip(), role=(x_user_role or "").strip().lower())


def _enforce_roles(user: CurrentUser, allowed_roles: set[str]) -> CurrentUser:
    if not user.role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User role not assigned",
        )
    if user.role in allowed_roles:
        return user
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient permissions",
    )


def require_admin_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Dependency ensuring the caller is an administrator."""
    return _enforce_roles(user, {"admin"})


def require_teacher_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Dependency ensuring the caller is a teacher."""
    return _enforce_roles(user, {"teacher"})


__all__ = [
    "CurrentUser",
    "get_current_user",
    "require_admin_user",
    "require_teacher_user",
]
