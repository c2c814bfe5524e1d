"""
Generic MongoDB entity store for Onboardflow.

This module provides the data access layer shared by every workflow service:
- Uniform CRUD operations for all entity types
- Filtered, sorted and paginated listing
- Reference expansion (populate) for id and id-list fields
- Atomic operator updates for counters and set unions
- All-or-nothing bulk inserts with compensating deletes
- Unique and lookup index management
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from onboardflow.app.core.database import get_mongodb_database
from onboardflow.app.core.exceptions import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    ValidationError,
    raise_database_error
)
from onboardflow.app.models.domain.workflow import utcnow
from onboardflow.app.utils.logging import (
    database_logger,
    get_logger,
    performance_context
)

logger = get_logger(__name__)

SortSpec = Sequence[Tuple[str, int]]

ALLOWED_OPERATORS = {"$set", "$inc", "$addToSet", "$push", "$pull", "$unset"}
PROTECTED_FIELDS = {"_id", "id", "createdAt"}


class EntityType(str, Enum):
    """Entity types known to the store."""

    ONBOARDING_CASE = "OnboardingCase"
    STAGE = "Stage"
    TASK = "Task"
    WORKFLOW_GUIDE = "WorkflowGuide"
    GUIDE_STEP = "GuideStep"
    CASE_GUIDE_LINK = "CaseGuideLink"
    NOTIFICATION = "Notification"
    AUDIT_LOG = "AuditLog"
    TEMPLATE = "Template"
    WORKFLOW_TYPE = "WorkflowType"
    USER = "User"
    CLIENT = "Client"
    DOCUMENT = "Document"


@dataclass(frozen=True)
class EntityDefinition:
    """Storage metadata for one entity type."""

    collection: str
    required: Tuple[str, ...] = ()
    unique: Tuple[str, ...] = ()
    references: Mapping[str, EntityType] = field(default_factory=dict)
    lookups: Tuple[Tuple[str, ...], ...] = ()


ENTITY_DEFINITIONS: Dict[EntityType, EntityDefinition] = {
    EntityType.ONBOARDING_CASE: EntityDefinition(
        collection="onboardingcases",
        required=("caseId", "clientId", "assignedChampion"),
        unique=("caseId",),
        references={
            "clientId": EntityType.CLIENT,
            "workflowTypeId": EntityType.WORKFLOW_TYPE,
            "assignedChampion": EntityType.USER,
            "assignedTeam": EntityType.USER,
            "createdBy": EntityType.USER,
            "linkedGuides": EntityType.WORKFLOW_GUIDE,
        },
        lookups=(("status",), ("clientId",), ("workflowTypeId",), ("assignedTeam",)),
    ),
    EntityType.STAGE: EntityDefinition(
        collection="stages",
        required=("stageId", "name", "onboardingCaseId"),
        unique=("stageId",),
        references={
            "onboardingCaseId": EntityType.ONBOARDING_CASE,
            "dependencies": EntityType.STAGE,
            "createdBy": EntityType.USER,
        },
        lookups=(("onboardingCaseId", "sequence"),),
    ),
    EntityType.TASK: EntityDefinition(
        collection="tasks",
        required=("taskId", "name", "onboardingCaseId"),
        unique=("taskId",),
        references={
            "stageId": EntityType.STAGE,
            "onboardingCaseId": EntityType.ONBOARDING_CASE,
            "assignedTo": EntityType.USER,
            "createdBy": EntityType.USER,
        },
        lookups=(("onboardingCaseId", "status"), ("stageId", "sequence"), ("assignedTo",), ("dueDate",)),
    ),
    EntityType.WORKFLOW_GUIDE: EntityDefinition(
        collection="workflowguides",
        required=("guideId", "title"),
        unique=("guideId",),
        references={"createdBy": EntityType.USER},
        lookups=(("category",),),
    ),
    EntityType.GUIDE_STEP: EntityDefinition(
        collection="guidesteps",
        required=("stepId", "guideId", "title"),
        unique=("stepId",),
        references={"guideId": EntityType.WORKFLOW_GUIDE, "viewedBy": EntityType.USER},
        lookups=(("guideId", "sequence"), ("referenceType", "stageOrTaskRef")),
    ),
    EntityType.CASE_GUIDE_LINK: EntityDefinition(
        collection="caseguidelinks",
        required=("onboardingCaseId", "guideId"),
        references={
            "onboardingCaseId": EntityType.ONBOARDING_CASE,
            "guideId": EntityType.WORKFLOW_GUIDE,
            "linkedBy": EntityType.USER,
            "removedBy": EntityType.USER,
        },
        lookups=(("onboardingCaseId", "status"), ("guideId",)),
    ),
    EntityType.NOTIFICATION: EntityDefinition(
        collection="notifications",
        required=("notificationId", "recipientId", "title", "message", "type"),
        unique=("notificationId",),
        references={"recipientId": EntityType.USER},
        lookups=(("recipientId", "isRead"), ("status", "scheduledFor")),
    ),
    EntityType.AUDIT_LOG: EntityDefinition(
        collection="auditlogs",
        required=("logId", "action", "entityType"),
        unique=("logId",),
        references={"userId": EntityType.USER, "reviewedBy": EntityType.USER},
        lookups=(("entityType", "entityId"), ("userId",), ("riskLevel", "isReviewed"), ("createdAt",)),
    ),
    EntityType.TEMPLATE: EntityDefinition(
        collection="templates",
        required=("templateId", "name", "type"),
        unique=("templateId",),
        references={"createdBy": EntityType.USER, "approvedBy": EntityType.USER},
        lookups=(("type", "status"),),
    ),
    EntityType.WORKFLOW_TYPE: EntityDefinition(
        collection="workflowtypes",
        required=("workflowTypeId", "name", "prefix"),
        unique=("workflowTypeId", "name", "prefix"),
        references={"createdBy": EntityType.USER},
        lookups=(("isDefault",),),
    ),
    EntityType.USER: EntityDefinition(
        collection="users",
        required=("firstName", "lastName", "email"),
        unique=("email",),
        lookups=(("role",),),
    ),
    EntityType.CLIENT: EntityDefinition(
        collection="clients",
        required=("name",),
        lookups=(("status",),),
    ),
    EntityType.DOCUMENT: EntityDefinition(
        collection="documents",
        required=("name",),
        unique=("documentId",),
        references={
            "linkedCaseId": EntityType.ONBOARDING_CASE,
            "linkedStageId": EntityType.STAGE,
            "linkedTaskId": EntityType.TASK,
            "uploadedBy": EntityType.USER,
        },
        lookups=(("linkedCaseId",),),
    ),
}

# Conflict codes for uniqueness violations that callers distinguish
CONFLICT_CODES: Dict[Tuple[EntityType, str], ErrorCode] = {
    (EntityType.ONBOARDING_CASE, "caseId"): ErrorCode.CASE_ID_DUPLICATE,
    (EntityType.USER, "email"): ErrorCode.USER_EMAIL_DUPLICATE,
    (EntityType.WORKFLOW_TYPE, "prefix"): ErrorCode.WORKFLOW_TYPE_DUPLICATE_PREFIX,
    (EntityType.WORKFLOW_TYPE, "name"): ErrorCode.WORKFLOW_TYPE_DUPLICATE_NAME,
}


@dataclass
class ListResult:
    """One page of a filtered listing."""

    items: List[Dict[str, Any]]
    total_count: int


def parse_sort(sort: Optional[str]) -> Optional[SortSpec]:
    """
    Parse a comma separated sort expression.

    ``"-createdAt,name"`` sorts by createdAt descending, then name ascending.
    """
    if not sort:
        return None
    spec = []
    for part in sort.split(","):
        part = part.strip()
        if not part:
            continue
        if part.startswith("-"):
            spec.append((part[1:], DESCENDING))
        else:
            spec.append((part.lstrip("+"), ASCENDING))
    return spec or None


def _normalize(value: Any) -> Any:
    """Convert aware datetimes to naive UTC, recursively."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_normalize(v) for v in value]
    return value


def _to_entity(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Expose ``_id`` as ``id``."""
    if document is None:
        return None
    entity = {"id": str(document["_id"])}
    entity.update({k: v for k, v in document.items() if k != "_id"})
    return entity


class EntityStore:
    """
    MongoDB store for all onboarding entities.

    Every entity type lives in its own collection; documents carry a string
    ``_id`` (hex ObjectId) and store-maintained ``createdAt``/``updatedAt``.
    """

    def __init__(self, database: Optional[AsyncIOMotorDatabase] = None):
        """
        Initialize the entity store.

        Args:
            database: Database handle; the application database is used when omitted
        """
        self._db = database

    async def _get_database(self) -> AsyncIOMotorDatabase:
        if self._db is None:
            self._db = await get_mongodb_database()
        return self._db

    async def _get_collection(self, entity_type: EntityType) -> AsyncIOMotorCollection:
        db = await self._get_database()
        return db[ENTITY_DEFINITIONS[entity_type].collection]

    @staticmethod
    def definition(entity_type: EntityType) -> EntityDefinition:
        return ENTITY_DEFINITIONS[entity_type]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def build_filter(filters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Translate a caller filter into a MongoDB query.

        Keys whose value is None are dropped, ``id`` maps to ``_id`` and
        aware datetimes are normalized to naive UTC.
        """
        query: Dict[str, Any] = {}
        for key, value in (filters or {}).items():
            if value is None:
                continue
            if isinstance(value, Mapping):
                value = {op: v for op, v in value.items() if v is not None}
                if not value:
                    continue
            query["_id" if key == "id" else key] = _normalize(value)
        return query

    def _check_required(self, entity_type: EntityType, payload: Mapping[str, Any], index: Optional[int] = None) -> None:
        missing = [
            name for name in self.definition(entity_type).required
            if payload.get(name) in (None, "")
        ]
        if missing:
            where = f" (item {index})" if index is not None else ""
            raise ValidationError(
                f"{entity_type.value}{where} is missing required fields: {', '.join(missing)}",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                field_errors=[
                    {"field": name, "message": "required", "index": index}
                    for name in missing
                ]
            )

    def _conflict(self, entity_type: EntityType, field_name: Optional[str], value: Any) -> ConflictError:
        code = CONFLICT_CODES.get((entity_type, field_name), ErrorCode.DUPLICATE_KEY)
        label = field_name or "unique key"
        return ConflictError(
            f"{entity_type.value} with {label} {value!r} already exists",
            error_code=code,
            entity_type=entity_type.value,
            field=field_name,
            value=value
        )

    async def _check_unique(
        self,
        entity_type: EntityType,
        collection: AsyncIOMotorCollection,
        payload: Mapping[str, Any],
        exclude_id: Optional[str] = None
    ) -> None:
        for name in self.definition(entity_type).unique:
            value = payload.get(name)
            if value is None:
                continue
            query: Dict[str, Any] = {name: value}
            if exclude_id is not None:
                query["_id"] = {"$ne": exclude_id}
            if await collection.find_one(query, projection={"_id": 1}) is not None:
                raise self._conflict(entity_type, name, value)

    def _duplicate_key_conflict(self, entity_type: EntityType, error: PyMongoError) -> ConflictError:
        """Map a driver duplicate key error onto the offending field."""
        details = getattr(error, "details", None) or {}
        key_pattern = details.get("keyPattern") or details.get("keyValue") or {}
        field_name = next(iter(key_pattern), None)
        if field_name is None:
            message = str(error)
            field_name = next(
                (name for name in self.definition(entity_type).unique if name in message),
                None
            )
        value = (details.get("keyValue") or {}).get(field_name) if field_name else None
        return self._conflict(entity_type, field_name, value)

    def _prepare_new(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        now = utcnow()
        document = {k: _normalize(v) for k, v in payload.items() if k not in PROTECTED_FIELDS}
        document["_id"] = str(payload.get("id") or ObjectId())
        document["createdAt"] = now
        document["updatedAt"] = now
        return document

    async def _expand(
        self,
        entity_type: EntityType,
        entities: List[Dict[str, Any]],
        expand: Optional[Iterable[str]]
    ) -> List[Dict[str, Any]]:
        """Replace reference ids with the referenced documents; dangling single ids are kept as is."""
        if not expand or not entities:
            return entities

        references = self.definition(entity_type).references
        for field_name in expand:
            target = references.get(field_name)
            if target is None:
                raise ValidationError(
                    f"{field_name} is not a reference of {entity_type.value}",
                    error_code=ErrorCode.INVALID_VALUE,
                    field_errors=[{"field": "expand", "value": field_name}]
                )

            ids = set()
            for entity in entities:
                value = entity.get(field_name)
                if isinstance(value, list):
                    ids.update(str(v) for v in value if v is not None)
                elif value is not None:
                    ids.add(str(value))
            if not ids:
                continue

            collection = await self._get_collection(target)
            cursor = collection.find({"_id": {"$in": list(ids)}})
            resolved = {
                doc["_id"]: _to_entity(doc)
                for doc in await cursor.to_list(length=None)
            }

            for entity in entities:
                value = entity.get(field_name)
                if isinstance(value, list):
                    entity[field_name] = [resolved[str(v)] for v in value if str(v) in resolved]
                elif value is not None:
                    entity[field_name] = resolved.get(str(value), value)

        return entities

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, entity_type: EntityType, entity_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one entity by id, or None when it does not exist."""
        collection = await self._get_collection(entity_type)
        try:
            document = await collection.find_one({"_id": str(entity_id)})
        except PyMongoError as e:
            raise_database_error(
                f"Failed to get {entity_type.value} {entity_id}: {e}",
                operation="find_one",
                collection_name=collection.name
            )

        database_logger.query_executed(
            database_type="mongodb",
            operation="find_one",
            collection=collection.name,
            result_count=1 if document else 0
        )
        return _to_entity(document)

    async def find_by_id(
        self,
        entity_type: EntityType,
        entity_id: str,
        expand: Optional[Iterable[str]] = None
    ) -> Dict[str, Any]:
        """
        Fetch one entity by id.

        Args:
            entity_type: Entity type
            entity_id: Store id of the entity
            expand: Reference fields to populate

        Returns:
            The entity

        Raises:
            NotFoundError: If the id does not resolve
        """
        entity = await self.get(entity_type, entity_id)
        if entity is None:
            raise NotFoundError(
                f"{entity_type.value} {entity_id} not found",
                entity_type=entity_type.value,
                entity_id=str(entity_id)
            )
        if expand:
            await self._expand(entity_type, [entity], expand)
        return entity

    async def list(
        self,
        entity_type: EntityType,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None,
        expand: Optional[Iterable[str]] = None
    ) -> ListResult:
        """
        List entities with filtering, sorting and pagination.

        Args:
            entity_type: Entity type
            filters: Field to exact value, ``{"$in": [...]}`` or range mapping
            sort: Sequence of (field, direction); defaults to newest first
            page: 1-based page number
            limit: Page size; all matching entities when None
            expand: Reference fields to populate

        Returns:
            The page of entities and the total number of matches
        """
        collection = await self._get_collection(entity_type)
        query = self.build_filter(filters)
        page = max(page, 1)

        try:
            with performance_context("mongodb_list", collection=collection.name):
                total_count = await collection.count_documents(query)

                cursor = collection.find(query).sort(list(sort or [("createdAt", DESCENDING)]))
                if limit:
                    cursor = cursor.skip((page - 1) * limit).limit(limit)
                documents = await cursor.to_list(length=None)

        except PyMongoError as e:
            raise_database_error(
                f"Failed to list {entity_type.value}: {e}",
                operation="find",
                collection_name=collection.name
            )

        database_logger.query_executed(
            database_type="mongodb",
            operation="find",
            collection=collection.name,
            result_count=len(documents)
        )

        items = [_to_entity(doc) for doc in documents]
        await self._expand(entity_type, items, expand)
        return ListResult(items=items, total_count=total_count)

    async def find(
        self,
        entity_type: EntityType,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Unpaged listing; returns at most ``limit`` entities when given."""
        result = await self.list(entity_type, filters, sort=sort, page=1, limit=limit)
        return result.items

    async def count(self, entity_type: EntityType, filters: Optional[Mapping[str, Any]] = None) -> int:
        collection = await self._get_collection(entity_type)
        try:
            return await collection.count_documents(self.build_filter(filters))
        except PyMongoError as e:
            raise_database_error(
                f"Failed to count {entity_type.value}: {e}",
                operation="count_documents",
                collection_name=collection.name
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, entity_type: EntityType, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Insert a new entity.

        Raises:
            ValidationError: If required fields are missing
            ConflictError: If a uniqueness constraint is violated
        """
        self._check_required(entity_type, payload)
        collection = await self._get_collection(entity_type)
        document = self._prepare_new(payload)

        try:
            with performance_context("mongodb_create", collection=collection.name):
                await self._check_unique(entity_type, collection, document)
                await collection.insert_one(document)

        except DuplicateKeyError as e:
            raise self._duplicate_key_conflict(entity_type, e)
        except PyMongoError as e:
            raise_database_error(
                f"Failed to create {entity_type.value}: {e}",
                operation="insert_one",
                collection_name=collection.name
            )

        database_logger.query_executed(
            database_type="mongodb",
            operation="insert_one",
            collection=collection.name,
            result_count=1
        )
        return _to_entity(document)

    async def update(
        self,
        entity_type: EntityType,
        entity_id: str,
        patch: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """
        Merge ``patch`` into an entity and return the updated entity.

        Raises:
            NotFoundError: If the entity does not exist
            ConflictError: If the patch violates a uniqueness constraint
        """
        changes = {k: _normalize(v) for k, v in patch.items() if k not in PROTECTED_FIELDS}
        return await self.apply(entity_type, entity_id, {"$set": changes})

    async def apply(
        self,
        entity_type: EntityType,
        entity_id: str,
        operations: Mapping[str, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        """
        Apply atomic update operators to one entity.

        Args:
            entity_type: Entity type
            entity_id: Store id of the entity
            operations: Operator documents, e.g. ``{"$inc": {"viewCount": 1}}``

        Returns:
            The updated entity

        Raises:
            ValidationError: If an operator is not supported
            NotFoundError: If the entity does not exist
        """
        unsupported = set(operations) - ALLOWED_OPERATORS
        if unsupported:
            raise ValidationError(
                f"Unsupported update operators: {', '.join(sorted(unsupported))}",
                error_code=ErrorCode.INVALID_VALUE
            )

        update: Dict[str, Any] = {
            op: _normalize(dict(values)) for op, values in operations.items() if values
        }
        update.setdefault("$set", {})["updatedAt"] = utcnow()

        collection = await self._get_collection(entity_type)
        try:
            with performance_context("mongodb_update", collection=collection.name, entity_id=entity_id):
                await self._check_unique(entity_type, collection, update["$set"], exclude_id=str(entity_id))
                document = await collection.find_one_and_update(
                    {"_id": str(entity_id)},
                    update,
                    return_document=ReturnDocument.AFTER
                )

        except DuplicateKeyError as e:
            raise self._duplicate_key_conflict(entity_type, e)
        except PyMongoError as e:
            raise_database_error(
                f"Failed to update {entity_type.value} {entity_id}: {e}",
                operation="find_one_and_update",
                collection_name=collection.name
            )

        database_logger.query_executed(
            database_type="mongodb",
            operation="find_one_and_update",
            collection=collection.name,
            result_count=1 if document else 0
        )

        if document is None:
            raise NotFoundError(
                f"{entity_type.value} {entity_id} not found",
                entity_type=entity_type.value,
                entity_id=str(entity_id)
            )
        return _to_entity(document)

    async def update_many(
        self,
        entity_type: EntityType,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any]
    ) -> int:
        """Set ``patch`` on every matching entity; returns the number modified."""
        changes = {k: _normalize(v) for k, v in patch.items() if k not in PROTECTED_FIELDS}
        changes["updatedAt"] = utcnow()

        collection = await self._get_collection(entity_type)
        try:
            result = await collection.update_many(self.build_filter(filters), {"$set": changes})
        except PyMongoError as e:
            raise_database_error(
                f"Failed to update {entity_type.value} entities: {e}",
                operation="update_many",
                collection_name=collection.name
            )

        database_logger.query_executed(
            database_type="mongodb",
            operation="update_many",
            collection=collection.name,
            result_count=result.modified_count
        )
        return result.modified_count

    async def delete(self, entity_type: EntityType, entity_id: str) -> Dict[str, Any]:
        """
        Delete an entity and return it.

        Raises:
            NotFoundError: If the entity does not exist
        """
        collection = await self._get_collection(entity_type)
        try:
            document = await collection.find_one_and_delete({"_id": str(entity_id)})
        except PyMongoError as e:
            raise_database_error(
                f"Failed to delete {entity_type.value} {entity_id}: {e}",
                operation="find_one_and_delete",
                collection_name=collection.name
            )

        database_logger.query_executed(
            database_type="mongodb",
            operation="find_one_and_delete",
            collection=collection.name,
            result_count=1 if document else 0
        )

        if document is None:
            raise NotFoundError(
                f"{entity_type.value} {entity_id} not found",
                entity_type=entity_type.value,
                entity_id=str(entity_id)
            )
        return _to_entity(document)

    async def delete_many(self, entity_type: EntityType, filters: Mapping[str, Any]) -> int:
        """Delete every matching entity; an empty filter is refused."""
        query = self.build_filter(filters)
        if not query:
            raise ValidationError(
                "Refusing to delete with an empty filter",
                error_code=ErrorCode.INVALID_VALUE
            )
        collection = await self._get_collection(entity_type)
        try:
            result = await collection.delete_many(query)
        except PyMongoError as e:
            raise_database_error(
                f"Failed to delete {entity_type.value} entities: {e}",
                operation="delete_many",
                collection_name=collection.name
            )
        return result.deleted_count

    async def insert_many(
        self,
        entity_type: EntityType,
        payloads: Sequence[Mapping[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Insert a batch of entities, all or nothing.

        The whole batch is validated before writing. The insert itself is
        unordered; if any document fails, the documents that were written
        are deleted again and the error is raised.

        Raises:
            ValidationError: If the batch is empty or an item misses required fields
            ConflictError: If an item violates a uniqueness constraint
            DatabaseError: If the bulk write fails for another reason
        """
        if not payloads:
            raise ValidationError(
                f"No {entity_type.value} items to insert",
                error_code=ErrorCode.EMPTY_BATCH
            )

        for index, payload in enumerate(payloads):
            self._check_required(entity_type, payload, index=index)

        collection = await self._get_collection(entity_type)
        documents = [self._prepare_new(payload) for payload in payloads]

        seen: Dict[str, set] = {}
        for document in documents:
            for name in self.definition(entity_type).unique:
                value = document.get(name)
                if value is None:
                    continue
                if value in seen.setdefault(name, set()):
                    raise self._conflict(entity_type, name, value)
                seen[name].add(value)

        try:
            with performance_context("mongodb_insert_many", collection=collection.name, count=len(documents)):
                for document in documents:
                    await self._check_unique(entity_type, collection, document)
                await collection.insert_many(documents, ordered=False)

        except BulkWriteError as e:
            failed = {error["index"] for error in e.details.get("writeErrors", [])}
            written = [doc["_id"] for i, doc in enumerate(documents) if i not in failed]
            if written:
                await collection.delete_many({"_id": {"$in": written}})

            logger.warning(
                "Bulk insert rolled back",
                collection=collection.name,
                attempted=len(documents),
                rolled_back=len(written),
                failed=len(failed)
            )

            codes = {error.get("code") for error in e.details.get("writeErrors", [])}
            if 11000 in codes:
                raise ConflictError(
                    f"Bulk insert of {entity_type.value} violated a uniqueness constraint",
                    entity_type=entity_type.value
                )
            raise_database_error(
                f"Bulk insert of {entity_type.value} failed: {e}",
                operation="insert_many",
                collection_name=collection.name,
                error_code=ErrorCode.BULK_WRITE_FAILED
            )
        except PyMongoError as e:
            raise_database_error(
                f"Bulk insert of {entity_type.value} failed: {e}",
                operation="insert_many",
                collection_name=collection.name,
                error_code=ErrorCode.BULK_WRITE_FAILED
            )

        database_logger.query_executed(
            database_type="mongodb",
            operation="insert_many",
            collection=collection.name,
            result_count=len(documents)
        )
        return [_to_entity(doc) for doc in documents]

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    async def ensure_indexes(self) -> None:
        """Create unique and lookup indexes for every collection."""
        for entity_type, definition in ENTITY_DEFINITIONS.items():
            collection = await self._get_collection(entity_type)
            try:
                for name in definition.unique:
                    await collection.create_index(
                        [(name, ASCENDING)],
                        unique=True,
                        sparse=True,
                        name=f"{name}_unique"
                    )
                for keys in definition.lookups:
                    await collection.create_index(
                        [(key, ASCENDING) for key in keys],
                        name="_".join(keys)
                    )
                await collection.create_index([("createdAt", DESCENDING)], name="createdAt_desc")
            except PyMongoError as e:
                logger.warning(
                    "Failed to create indexes",
                    collection=definition.collection,
                    error=str(e)
                )

        logger.info("Entity store indexes ensured", collections=len(ENTITY_DEFINITIONS))
