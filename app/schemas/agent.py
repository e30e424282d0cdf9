from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class AgentCreate(BaseModel):
    name: str
    agent_id: str
    endpoint: str
    api_key: str
    active: bool = True


class AgentUpdate(BaseModel):
    name: Optional[str] = None
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    active: Optional[bool] = None


class AgentResponse(BaseModel):
    """Public view of an agent; the api_key is write-only."""
    id: int
    name: str
    agent_id: str
    endpoint: str
    active: bool
    usage_count: int
    last_used: Optional[datetime] = None
    has_api_key: bool = True

    class Config:
        from_attributes = True
