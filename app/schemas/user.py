"""
User Pydantic Schemas

Schemas:
- UserCreate: Registration data (name, email, password + confirmation)
- LoginRequest: Email/password login
- UserResponse: Public user data (never exposes password)
- AuthData / TokenData: Login and refresh payloads
- AccountDeleteRequest: Password re-confirmation for account deletion
"""

from datetime import datetime

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationInfo,
    field_validator,
)


class UserCreate(BaseModel):
    """Schema for user registration."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Display name",
        examples=["Jane Reader"],
    )

    email: EmailStr = Field(
        ...,
        max_length=255,
        description="Email address (used for login)",
        examples=["jane@example.com"],
    )

    password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="Password (min 8 characters)",
        examples=["SecurePass123"],
    )

    password_confirmation: str = Field(
        ...,
        description="Must match password",
        examples=["SecurePass123"],
    )

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name must not be blank")
        return v.strip()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password_confirmation")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        password = info.data.get("password")
        if password is not None and v != password:
            raise ValueError("Password confirmation does not match")
        return v


class LoginRequest(BaseModel):
    """Schema for email/password login."""

    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class RefreshTokenRequest(BaseModel):
    """Refresh token passed in the body instead of the cookie."""

    refresh_token: str | None = None


class AccountDeleteRequest(BaseModel):
    """Password re-confirmation required to delete an account."""

    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """
    Schema for user responses.

    SECURITY: Never includes password or sensitive internal fields.
    """

    id: int
    name: str
    email: EmailStr
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenData(BaseModel):
    """Access token returned by login and refresh."""

    token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class AuthData(TokenData):
    """Data block of register and login responses."""

    user: UserResponse


class UserData(BaseModel):
    user: UserResponse
