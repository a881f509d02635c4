"""
Common Schemas
Shared Pydantic models for common API structures
"""
from typing import Any, Dict, List, Optional, Generic, TypeVar
from pydantic import BaseModel, Field

T = TypeVar('T')


class PaginatedResponse(BaseModel, Generic[T]):
    """Page of results for list endpoints"""
    items: List[T] = Field(..., description="Items for the current page")
    total: int = Field(..., description="Number of items returned")
    skip: int = Field(0, description="Rows skipped")
    limit: int = Field(100, description="Page size")


class ErrorResponse(BaseModel):
    """
    Standard error response model

    Every FoodStockException is rendered in this shape.
    """
    error: str = Field(..., description="Exception class")
    code: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": "InsufficientStockError",
                "code": "INSUFFICIENT_STOCK",
                "message": "Insufficient stock for 1 item(s) at location Main Kitchen. "
                           "Rice (RICE-01): requested 15 KG, available 10 KG",
                "details": {"insufficient_items": []}
            }
        }
    }


class SuccessResponse(BaseModel):
    """Operations that don't return a record"""
    success: bool = Field(True, description="Operation success flag")
    message: str = Field(..., description="Success message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional response data")
