from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ResponseWrapper(BaseModel, Generic[T]):
    """Envelope for every successful API response"""

    success: bool = True
    message: Optional[str] = None
    data: T
