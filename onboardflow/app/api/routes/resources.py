"""
Plain resource API Routes

Clients and documents need nothing beyond storage, so their routers are
built from one CRUD factory over the EntityStore. Users go through
UserService for email normalization and role validation.
"""

from typing import Any, Dict, Iterable, Optional, Tuple

from fastapi import APIRouter, Body, Depends, Query, Request, status

from onboardflow.app.api.deps import (
    Actor,
    PageParams,
    get_current_user,
    get_entity_store,
    get_page_params,
    get_user_service
)
from onboardflow.app.models.api.admin_schemas import UserCreateRequest, UserUpdateRequest
from onboardflow.app.models.api.common import ApiResponse, ok, paginated
from onboardflow.app.models.domain.workflow import UserRole
from onboardflow.app.repositories.mongodb.entity_store import EntityStore, EntityType
from onboardflow.app.services.user_service import UserService
from onboardflow.app.utils.logging import get_logger

logger = get_logger(__name__)


def build_crud_router(
    prefix: str,
    entity_type: EntityType,
    filter_fields: Tuple[str, ...] = (),
    expand: Optional[Iterable[str]] = None,
    stamp_field: Optional[str] = None
) -> APIRouter:
    """
    Build list/get/create/update/delete routes for one entity type.

    Args:
        prefix: Router prefix, e.g. ``/clients``
        entity_type: Entity type the routes operate on
        filter_fields: Query parameters passed through as exact-match filters
        expand: Reference fields populated on get
        stamp_field: Field set to the acting user on create
    """
    router = APIRouter(prefix=prefix, tags=[prefix.strip("/")])
    name = entity_type.value
    expand = list(expand or [])

    @router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED, summary=f"Create {name}")
    async def create_entity(
        body: Dict[str, Any] = Body(...),
        actor: Actor = Depends(get_current_user),
        store: EntityStore = Depends(get_entity_store)
    ) -> ApiResponse:
        payload = dict(body)
        if stamp_field:
            payload.setdefault(stamp_field, actor.user_id)
        entity = await store.create(entity_type, payload)
        logger.info(f"{name} created", entity_id=entity["id"], user_id=actor.user_id)
        return ok(entity, f"{name} created successfully")

    @router.get("", response_model=ApiResponse, summary=f"List {name}s")
    async def list_entities(
        request: Request,
        paging: PageParams = Depends(get_page_params),
        actor: Actor = Depends(get_current_user),
        store: EntityStore = Depends(get_entity_store)
    ) -> ApiResponse:
        filters = {field: request.query_params.get(field) for field in filter_fields}
        result = await store.list(entity_type, filters, sort=paging.sort, page=paging.page, limit=paging.limit)
        return paginated(result, paging.page, paging.limit)

    @router.get("/{entity_id}", response_model=ApiResponse, summary=f"Get {name}")
    async def get_entity(
        entity_id: str,
        actor: Actor = Depends(get_current_user),
        store: EntityStore = Depends(get_entity_store)
    ) -> ApiResponse:
        return ok(await store.find_by_id(entity_type, entity_id, expand=expand))

    @router.put("/{entity_id}", response_model=ApiResponse, summary=f"Update {name}")
    async def update_entity(
        entity_id: str,
        body: Dict[str, Any] = Body(...),
        actor: Actor = Depends(get_current_user),
        store: EntityStore = Depends(get_entity_store)
    ) -> ApiResponse:
        return ok(await store.update(entity_type, entity_id, body), f"{name} updated successfully")

    @router.delete("/{entity_id}", response_model=ApiResponse, summary=f"Delete {name}")
    async def delete_entity(
        entity_id: str,
        actor: Actor = Depends(get_current_user),
        store: EntityStore = Depends(get_entity_store)
    ) -> ApiResponse:
        entity = await store.delete(entity_type, entity_id)
        logger.info(f"{name} deleted", entity_id=entity_id, user_id=actor.user_id)
        return ok({"id": entity["id"]}, f"{name} deleted successfully")

    return router


clients_router = build_crud_router(
    "/clients",
    EntityType.CLIENT,
    filter_fields=("status", "industry", "size")
)

documents_router = build_crud_router(
    "/documents",
    EntityType.DOCUMENT,
    filter_fields=("linkedCaseId", "linkedStageId", "linkedTaskId", "category"),
    expand=["uploadedBy"],
    stamp_field="uploadedBy"
)

users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED, summary="Create User")
async def create_user(
    body: UserCreateRequest,
    actor: Actor = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service)
) -> ApiResponse:
    return ok(await user_service.create(body.to_payload()), "User created successfully")


@users_router.get("", response_model=ApiResponse, summary="List Users")
async def list_users(
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    department: Optional[str] = Query(None),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service)
) -> ApiResponse:
    result = await user_service.list(
        {"role": role.value if role else None, "isActive": is_active, "department": department},
        sort=paging.sort,
        page=paging.page,
        limit=paging.limit
    )
    return paginated(result, paging.page, paging.limit)


@users_router.get("/{user_id}", response_model=ApiResponse, summary="Get User")
async def get_user(
    user_id: str,
    actor: Actor = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service)
) -> ApiResponse:
    return ok(await user_service.get(user_id))


@users_router.put("/{user_id}", response_model=ApiResponse, summary="Update User")
async def update_user(
    user_id: str,
    body: UserUpdateRequest,
    actor: Actor = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service)
) -> ApiResponse:
    return ok(await user_service.update(user_id, body.to_payload()), "User updated successfully")


@users_router.delete("/{user_id}", response_model=ApiResponse, summary="Deactivate User")
async def deactivate_user(
    user_id: str,
    actor: Actor = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service)
) -> ApiResponse:
    return ok(await user_service.deactivate(user_id), "User deactivated")
