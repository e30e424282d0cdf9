from pydantic import BaseModel, EmailStr
from typing import Optional


class AdminLogin(BaseModel):
    email: EmailStr
    password: str


class TokenPair(BaseModel):
    """Short-lived access token plus the refresh token that renews it."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class AdminProfile(BaseModel):
    id: int
    email: str
    display_name: Optional[str]
    is_admin: bool

    class Config:
        from_attributes = True
