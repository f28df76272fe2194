from typing import Any, Optional

from pydantic import BaseModel


class OperationResult(BaseModel):
    """Envelope returned by every engine operation."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None
    code: Optional[str] = None
