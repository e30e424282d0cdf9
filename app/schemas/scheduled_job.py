from pydantic import AfterValidator, BaseModel, Field
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store and compare every timestamp as naive UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]


class ScheduledJobCreate(BaseModel):
    title: str
    content: Optional[str] = None
    theme_id: Optional[int] = None
    scheduled_for: UtcDatetime


class ScheduledJobUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    theme_id: Optional[int] = None
    scheduled_for: Optional[UtcDatetime] = None


class GenerateNowRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    theme_id: Optional[int] = None


class AutoGenerationToggle(BaseModel):
    enabled: bool


class BulkActionRequest(BaseModel):
    action: Literal["generate", "cancel"]
    job_ids: List[int] = Field(min_length=1, max_length=100)


class ScheduledJobResponse(BaseModel):
    id: int
    title: str
    content: Optional[str] = None
    theme_id: Optional[int] = None
    scheduled_for: datetime
    status: str
    source: str
    published_post_id: Optional[int] = None
    retry_count: int
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
