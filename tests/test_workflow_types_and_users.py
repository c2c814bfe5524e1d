"""
Unit tests for workflow types and users.

Test Coverage:
- Workflow type prefixes, uniqueness and the single default
- Deleting workflow types in use
- User email normalization and uniqueness
"""

import pytest

from onboardflow.app.core.exceptions import ConflictError, ErrorCode, ValidationError
from onboardflow.app.repositories.mongodb.entity_store import EntityType
from onboardflow.app.services.workflow_type_service import MongoDefaultWorkflowTypeProvider

from conftest import CHAMPION, CREATOR


class TestWorkflowTypes:
    """Test suite for workflow types."""

    async def test_prefix_normalized(self, workflow_type_service):
        """Test that prefixes are trimmed and upper-cased."""
        workflow_type = await workflow_type_service.create({"name": "Enterprise", "prefix": " ent "})

        assert workflow_type["prefix"] == "ENT"
        assert workflow_type["isDefault"] is False
        assert workflow_type["totalCases"] == 0

    @pytest.mark.parametrize("prefix", ["", "TOOLONG", "A-B"])
    async def test_invalid_prefix(self, workflow_type_service, prefix):
        """Test that prefixes must be 1-3 letters or digits."""
        with pytest.raises(ValidationError) as exc_info:
            await workflow_type_service.create({"name": "Bad", "prefix": prefix})

        assert exc_info.value.error_code == ErrorCode.INVALID_VALUE

    async def test_duplicate_prefix(self, workflow_type_service):
        """Test the dedicated conflict code for a taken prefix."""
        await workflow_type_service.create({"name": "Enterprise", "prefix": "ENT"})

        with pytest.raises(ConflictError) as exc_info:
            await workflow_type_service.create({"name": "Entertainment", "prefix": "ent"})

        assert exc_info.value.error_code == ErrorCode.WORKFLOW_TYPE_DUPLICATE_PREFIX

    async def test_duplicate_name(self, workflow_type_service):
        """Test the dedicated conflict code for a taken name."""
        await workflow_type_service.create({"name": "Enterprise", "prefix": "ENT"})

        with pytest.raises(ConflictError) as exc_info:
            await workflow_type_service.create({"name": "Enterprise", "prefix": "EN2"})

        assert exc_info.value.error_code == ErrorCode.WORKFLOW_TYPE_DUPLICATE_NAME

    async def test_single_default(self, workflow_type_service, store):
        """Test that setting a default clears the previous one."""
        first = await workflow_type_service.create({"name": "One", "prefix": "ONE", "isDefault": True})
        second = await workflow_type_service.create({"name": "Two", "prefix": "TWO"})

        await workflow_type_service.set_default(second["id"])

        defaults = await store.find(EntityType.WORKFLOW_TYPE, {"isDefault": True})
        assert [d["id"] for d in defaults] == [second["id"]]
        assert (await workflow_type_service.get(first["id"]))["isDefault"] is False

    async def test_default_provider(self, workflow_type_service, store):
        """Test that the store-backed provider returns the active default."""
        provider = MongoDefaultWorkflowTypeProvider(store)
        assert await provider.get_default() is None

        created = await workflow_type_service.create({"name": "One", "prefix": "ONE", "isDefault": True})

        assert (await provider.get_default())["id"] == created["id"]

    async def test_delete_in_use(self, workflow_type_service, case_service):
        """Test that a workflow type used by a case cannot be deleted."""
        workflow_type = await workflow_type_service.create({"name": "Enterprise", "prefix": "ENT"})
        await case_service.create_case(
            {"clientId": "c1", "assignedChampion": CHAMPION, "workflowTypeId": workflow_type["id"]},
            created_by=CREATOR
        )

        with pytest.raises(ConflictError) as exc_info:
            await workflow_type_service.delete(workflow_type["id"])

        assert exc_info.value.error_code == ErrorCode.WORKFLOW_TYPE_IN_USE

    async def test_delete_unused(self, workflow_type_service, store):
        """Test that an unused workflow type is deleted."""
        workflow_type = await workflow_type_service.create({"name": "Enterprise", "prefix": "ENT"})

        await workflow_type_service.delete(workflow_type["id"])

        assert await store.count(EntityType.WORKFLOW_TYPE) == 0


class TestUsers:
    """Test suite for users."""

    async def test_create_normalizes_and_drops_password(self, user_service):
        """Test email lower-casing, default role and that passwords are never stored."""
        user = await user_service.create({
            "firstName": " Ada ", "lastName": "Lovelace", "email": "Ada@Example.COM", "password": "secret"
        })

        assert user["email"] == "ada@example.com"
        assert user["firstName"] == "Ada"
        assert user["role"] == "Team Member"
        assert user["isActive"] is True
        assert "password" not in user

    async def test_email_conflict_ignores_case(self, user_service):
        """Test that emails differing only in case collide."""
        await user_service.create({"firstName": "A", "lastName": "A", "email": "a@example.com"})

        with pytest.raises(ConflictError) as exc_info:
            await user_service.create({"firstName": "B", "lastName": "B", "email": "A@EXAMPLE.COM"})

        assert exc_info.value.error_code == ErrorCode.USER_EMAIL_DUPLICATE

    async def test_unknown_role(self, user_service):
        """Test that roles must be known."""
        with pytest.raises(ValidationError):
            await user_service.create({"firstName": "A", "lastName": "A", "email": "a@example.com", "role": "Boss"})

    async def test_deactivate(self, user_service):
        """Test that deactivation keeps the user but marks it inactive."""
        user = await user_service.create({"firstName": "A", "lastName": "A", "email": "a@example.com"})

        deactivated = await user_service.deactivate(user["id"])

        assert deactivated["isActive"] is False
        assert (await user_service.get(user["id"]))["email"] == "a@example.com"
