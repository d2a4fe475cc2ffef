"""
Pydantic models for authentication endpoints.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RegisterRequest(BaseModel):
    """Request model for user registration."""

    username: str = Field(..., min_length=3, max_length=50, description="Display name")
    email: str = Field(..., max_length=254, description="Email address (used to log in)")
    password: str = Field(..., min_length=6, max_length=128, description="Password (min 6 characters)")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "username": "gamer123",
                "email": "gamer@example.com",
                "password": "SecurePass123!",
            }
        }
    )

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Invalid email address")
        return v


class LoginRequest(BaseModel):
    """Request model for logging in."""

    email: str = Field(..., description="Registered email address")
    password: str = Field(..., min_length=1, description="User password")

    model_config = ConfigDict(
        json_schema_extra={"example": {"email": "gamer@example.com", "password": "SecurePass123!"}}
    )


class UserInfo(BaseModel):
    """Public user information."""

    id: str = Field(..., description="User ID")
    username: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    created_at: Optional[str] = Field(default=None, alias="createdAt", description="Registration time (ISO format)")

    model_config = ConfigDict(populate_by_name=True)


class AuthResponse(BaseModel):
    """Response model for register and login."""

    success: bool = Field(default=True)
    token: str = Field(..., description="Bearer token valid for 7 days")
    user: UserInfo

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "user": {
                    "id": "3f1c8a52-7d0e-4a45-9a0b-6e0f2b1d9c11",
                    "username": "gamer123",
                    "email": "gamer@example.com",
                    "createdAt": "2026-01-25T14:00:00",
                },
            }
        }
    )


class UserResponse(BaseModel):
    """Response model for the current user."""

    success: bool = Field(default=True)
    user: UserInfo
