import logging

from ..domain.errors import AuthorizationError
from ..domain.repositories import LocalCache
from ..domain.services import is_institutional_email
from ..models import UserRole
from ..schemas import UserRead

logger = logging.getLogger(__name__)

STAFF_ROLES = frozenset({UserRole.STAFF, UserRole.ADMIN})


def ensure_staff(user: UserRead) -> None:
    if user.role not in STAFF_ROLES:
        raise AuthorizationError("staff or admin role required")


def ensure_institutional(user: UserRead, domain: str) -> None:
    if not is_institutional_email(user.email, domain):
        raise AuthorizationError(f"an @{domain} account is required")


async def clear_local_state(cache: LocalCache) -> None:
    """Drop cached reservations and users on logout."""
    await cache.clear_all_users()
    await cache.clear_all_reservations()
    logger.info("local cache cleared")
