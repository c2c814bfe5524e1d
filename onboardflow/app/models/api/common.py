"""
Shared API schema building blocks.

Request bodies are declared with snake_case attributes and travel as
camelCase JSON; ``ApiModel.to_payload`` returns the camelCase dict the
services work with.
"""

import math
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from onboardflow.app.repositories.mongodb.entity_store import ListResult


class ApiModel(BaseModel):
    """Base for request bodies: camelCase on the wire, unknown fields kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        use_enum_values=True
    )

    def to_payload(self) -> Dict[str, Any]:
        """Fields the client actually sent, keyed by their camelCase names."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class Pagination(BaseModel):
    """Page metadata for list responses."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_page: int = Field(..., description="1-based page number")
    total_pages: int = Field(..., description="Number of pages at this page size")
    total_items: int = Field(..., description="Number of matching items")
    items_per_page: int = Field(..., description="Page size")


class ApiResponse(BaseModel):
    """Generic API response wrapper."""

    success: bool = Field(True, description="Whether the request was successful")
    message: Optional[str] = Field(None, description="Human-readable message")
    data: Optional[Any] = Field(None, description="Response payload")
    pagination: Optional[Dict[str, int]] = Field(None, description="Page metadata for lists")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "message": "Case created successfully",
                "data": {"id": "665f1c2e9b1e8a3d4c2b1a00", "caseId": "OB-1718000000000-1A2B3C"},
            }
        }
    )


def ok(data: Any = None, message: Optional[str] = None) -> ApiResponse:
    return ApiResponse(success=True, message=message, data=data)


def paginated(result: ListResult, page: int, limit: int, message: Optional[str] = None) -> ApiResponse:
    """Wrap one page of a listing with its pagination block."""
    pagination = Pagination(
        current_page=page,
        total_pages=math.ceil(result.total_count / limit) if limit else 1,
        total_items=result.total_count,
        items_per_page=limit,
    )
    return ApiResponse(
        success=True,
        message=message,
        data=result.items,
        pagination=pagination.model_dump(by_alias=True),
    )
