"""Session roles and the dashboard route guard."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Profile roles recognised by the dashboards."""

    ADMIN = "admin"
    MERCHANT = "isletmeci"
    PENDING_BUSINESS = "pending_business"
    USER = "user"


MERCHANT_ROLES = frozenset({Role.MERCHANT.value, Role.PENDING_BUSINESS.value})

LOGIN_PATH = "/login"
ADMIN_DASHBOARD = "/admin/dashboard"
MERCHANT_DASHBOARD = "/merchant/dashboard"
HOME_PATH = "/"


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Signed-in user as seen by the request being handled."""

    user_id: str
    role: str = Role.USER.value

    @property
    def normalized_role(self) -> str:
        return normalize_role(self.role)


def normalize_role(role: str | None) -> str:
    """Lower-case the role, defaulting to ``user``."""

    return (role or Role.USER.value).strip().lower() or Role.USER.value


def is_admin_role(role: str | None) -> bool:
    return normalize_role(role) == Role.ADMIN.value


def is_merchant_role(role: str | None) -> bool:
    return normalize_role(role) in MERCHANT_ROLES


def dashboard_path_for_role(role: str | None) -> str:
    """Return the landing page for the given role."""

    if is_admin_role(role):
        return ADMIN_DASHBOARD
    if is_merchant_role(role):
        return MERCHANT_DASHBOARD
    return HOME_PATH


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def resolve_redirect(path: str, session: SessionContext | None) -> str | None:
    """
    Return the path the request must be redirected to, or None to let it through.

    ``/admin``, ``/merchant`` and ``/future`` need a session. Signed-in users are
    sent from the login page to their dashboard, and from panels their role may
    not open back to their own dashboard.
    """

    is_admin_path = _under(path, "/admin")
    is_merchant_path = _under(path, "/merchant")
    is_future_path = _under(path, "/future")
    is_login_path = _under(path, LOGIN_PATH)

    if session is None:
        if is_admin_path or is_merchant_path or is_future_path:
            return LOGIN_PATH
        return None

    target = dashboard_path_for_role(session.role)
    if is_login_path:
        return target
    if is_admin_path and not is_admin_role(session.role):
        return target
    if is_merchant_path and not is_merchant_role(session.role):
        return target
    return None
