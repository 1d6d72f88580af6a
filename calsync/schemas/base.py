from pydantic import BaseModel
from typing import Optional

class ResponseBase(BaseModel):
    """Base response schema."""
    success: bool
    message: Optional[str] = None
    # Set when the provider-side change succeeded but the local mirror did not
    warning: Optional[str] = None
