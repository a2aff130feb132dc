# ============================================================================
# schemas/auth.py - Authentication Schemas
# ============================================================================
from pydantic import EmailStr, Field
from typing import Optional
from cvintelligence.schemas.base import CamelModel

class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)

class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)

class GoogleLoginRequest(CamelModel):
    token: str = Field(min_length=1)

class UserResponse(CamelModel):
    id: int
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    profile_image_url: Optional[str] = None
    credits: int
    is_admin: bool
    auth_provider: str
