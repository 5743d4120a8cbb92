"""
Pydantic base models for request/response validation.

DESIGN PRINCIPLE:
- Models should reflect data structure, not business logic
- Keep models simple and focused on validation
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from app.utils.timestamps import utcnow


class BaseResponse(BaseModel):
    """
    Base response model for API responses that carry no resource.
    """
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
