from pydantic import BaseModel
from typing import Optional, Any


class ErrorResponse(BaseModel):
    """
    Standard error response structure.
    """
    error: str
    code: str
    details: Optional[Any] = None


class SuccessResponse(BaseModel):
    """
    Minimal acknowledgement returned by mutating endpoints.
    """
    success: bool = True
    message: Optional[str] = None
    warning: Optional[str] = None
