"""
User Service

Directory of the people who work onboarding cases. Emails are unique;
users are deactivated rather than deleted so that audit entries and
assignments keep resolving.
"""

from typing import Any, Dict, Mapping, Optional

from onboardflow.app.models.domain.workflow import UserRole, coerce_enum
from onboardflow.app.repositories.mongodb.entity_store import (
    EntityStore,
    EntityType,
    ListResult,
    SortSpec
)
from onboardflow.app.utils.logging import get_logger

logger = get_logger(__name__)

# Never stored or returned
PRIVATE_FIELDS = ("password",)


def _clean(payload: Mapping[str, Any]) -> Dict[str, Any]:
    user = {k: v for k, v in payload.items() if k not in PRIVATE_FIELDS}
    for name in ("firstName", "lastName", "middleName", "email", "phone"):
        if isinstance(user.get(name), str):
            user[name] = user[name].strip()
    if isinstance(user.get("email"), str):
        user["email"] = user["email"].lower()
    return user


class UserService:
    """Manages users."""

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store or EntityStore()

    async def create(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Register a user.

        Raises:
            ValidationError: If a name or the email is missing, or the role is unknown
            ConflictError: USER_EMAIL_DUPLICATE if the email is taken
        """
        user = _clean(payload)
        user["role"] = coerce_enum(UserRole, user.get("role"), "role", UserRole.TEAM_MEMBER)
        user.setdefault("isActive", True)
        user.setdefault("skills", [])

        created = await self.store.create(EntityType.USER, user)
        logger.info("User created", user_id=created["id"], role=created["role"])
        return created

    async def get(self, user_id: str) -> Dict[str, Any]:
        return await self.store.find_by_id(EntityType.USER, user_id)

    async def list(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> ListResult:
        return await self.store.list(
            EntityType.USER, filters, sort=sort or [("lastName", 1), ("firstName", 1)], page=page, limit=limit
        )

    async def update(self, user_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        changes = _clean(patch)
        if "role" in changes:
            changes["role"] = coerce_enum(UserRole, changes["role"], "role")
        return await self.store.update(EntityType.USER, user_id, changes)

    async def deactivate(self, user_id: str) -> Dict[str, Any]:
        user = await self.store.update(EntityType.USER, user_id, {"isActive": False})
        logger.info("User deactivated", user_id=user_id)
        return user
