"""Standardized API Response Schemas"""

from typing import Generic, TypeVar
from pydantic import BaseModel


T = TypeVar('T')


class SuccessResponse(BaseModel, Generic[T]):
    """
    Standard success response envelope.

    Example:
        {
            "success": true,
            "data": {...},
            "message": "Operation successful"
        }
    """
    success: bool = True
    data: T
    message: str = "Operation successful"


class ListResponse(BaseModel, Generic[T]):
    """Success envelope for unpaginated collections"""
    success: bool = True
    count: int
    data: list[T]
    message: str = "Operation successful"


class MessageResponse(BaseModel):
    """Success envelope for operations that return no payload (deletes)"""
    success: bool = True
    message: str = "Operation successful"


class ErrorDetail(BaseModel):
    """Error details structure"""
    code: str
    message: str


class ErrorResponse(BaseModel):
    """
    Standard error response envelope.

    Example:
        {
            "success": false,
            "error": {
                "code": "RESOURCE_NOT_FOUND",
                "message": "Medical bill not found"
            }
        }
    """
    success: bool = False
    error: ErrorDetail
