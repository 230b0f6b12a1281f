from typing import Optional
from pydantic import BaseModel, EmailStr, ConfigDict, Field
from datetime import datetime


class UserCreate(BaseModel):
    email: EmailStr
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    username: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str


class User(UserSummary):
    email: EmailStr
    is_active: bool = True
    created_at: Optional[datetime] = None


class UserWithRelation(UserSummary):
    """User row as seen by the current user, e.g. on the users index"""
    is_following: bool = False
    is_friend: bool = False
