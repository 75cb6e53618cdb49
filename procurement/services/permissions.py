"""Capability checks consumed by the procurement services.

Capabilities are Django permissions on the ``procurement`` app. The services
never inspect roles except through :func:`role_of` for the small allow-lists
configured in settings.
"""

from typing import Iterable, Optional

from django.core.exceptions import ObjectDoesNotExist

from procurement.exceptions import AuthorizationError

APP_LABEL = "procurement"


def _perm(name: str) -> str:
    return name if "." in name else f"{APP_LABEL}.{name}"


def has_permission(user, name: str) -> bool:
    if user is None or not getattr(user, "is_active", False):
        return False
    return user.has_perm(_perm(name))


def has_any_permission(user, names: Iterable[str]) -> bool:
    return any(has_permission(user, name) for name in names)


def require_permission(user, name: str, message: Optional[str] = None) -> None:
    if not has_permission(user, name):
        raise AuthorizationError(message or f"Missing permission '{name}'")


def require_any_permission(user, names: Iterable[str], message: Optional[str] = None) -> None:
    names = list(names)
    if not has_any_permission(user, names):
        raise AuthorizationError(
            message or f"Missing one of permissions: {', '.join(names)}"
        )


def staff_profile(user):
    """Return the user's staff profile or ``None``."""
    if user is None:
        return None
    try:
        return user.staff_profile
    except (ObjectDoesNotExist, AttributeError):
        return None


def role_of(user) -> str:
    profile = staff_profile(user)
    return (profile.role or "").strip() if profile else ""


def role_in(user, roles: Iterable[str]) -> bool:
    role = role_of(user).lower()
    return bool(role) and role in {r.lower() for r in roles}
