from pydantic import BaseModel
from typing import List

class ProfileCompletionResponse(BaseModel):
    success: bool = True
    percentage: int
    can_publish: bool
    is_bookable: bool
    missing_required: List[str] = []
    missing_optional: List[str] = []
