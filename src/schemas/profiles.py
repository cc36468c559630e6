from typing import List, Optional

from pydantic import BaseModel, Field

from src.models.profile import ProfileWithMeta


class ProfileListResponse(BaseModel):
    status: str  # "ok" | "empty" | "error"
    groups: List[str] = Field(default_factory=list)
    profiles: List[ProfileWithMeta] = Field(default_factory=list)


class ProfileEditRequest(BaseModel):
    name: Optional[str] = None
    group_number: Optional[str] = None
    common_denominators: Optional[List[str]] = None
    performance_pattern: Optional[List[str]] = None


class HealthResponse(BaseModel):
    status: str
    backend: str
    profiles_cached: int
