from pydantic import BaseModel
from typing import List, Optional


class ThemeCreate(BaseModel):
    name: str
    prompt: str
    description: Optional[str] = None
    keywords: List[str] = []
    tone: Optional[str] = None
    target_audience: Optional[str] = None
    guidelines: Optional[str] = None
    active: bool = True


class ThemeUpdate(BaseModel):
    name: Optional[str] = None
    prompt: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[List[str]] = None
    tone: Optional[str] = None
    target_audience: Optional[str] = None
    guidelines: Optional[str] = None
    active: Optional[bool] = None


class ThemeResponse(ThemeCreate):
    id: int

    class Config:
        from_attributes = True
