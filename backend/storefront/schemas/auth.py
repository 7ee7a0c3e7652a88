"""Pydantic schemas for auth API. Field aliases keep the camelCase wire names."""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.models.user import User

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_email(value: str) -> str:
    value = (value or "").strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


class CurrentUser(BaseModel):
    """Authenticated identity resolved for a request; also the cached form."""

    id: int
    username: str
    email: str
    second_email: str | None = None
    role: str
    is_verified: bool

    @classmethod
    def from_user(cls, user: User) -> "CurrentUser":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            second_email=user.second_email,
            role=user.role,
            is_verified=user.is_verified,
        )


class RegisterBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(min_length=3, max_length=50)
    email: str
    password: str = Field(min_length=8, max_length=128)
    first_name: str | None = Field(None, alias="firstName", max_length=100)
    last_name: str | None = Field(None, alias="lastName", max_length=100)

    normalize_email = field_validator("email")(_normalize_email)

    @field_validator("username")
    @classmethod
    def _strip_username(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("Username must be at least 3 characters")
        return value


class LoginBody(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()


class ForgotPasswordBody(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()


class ResetPasswordBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset_code: str | None = Field(None, alias="resetCode")
    new_password: str | None = Field(None, alias="newPassword")
    email: str | None = None


class SecondEmailBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    second_email: str = Field(alias="secondEmail")

    normalize_email = field_validator("second_email")(_normalize_email)


class SecondFactorVerifyBody(BaseModel):
    code: str = Field(min_length=1, max_length=64)


class UsernameResponse(BaseModel):
    username: str


class LoginResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    csrf_token: str = Field(serialization_alias="csrfToken")
    requires_second_factor: bool | None = Field(None, serialization_alias="requiresSecondFactor")


class RefreshResponse(BaseModel):
    msg: str = "Access token refreshed"
    csrf_token: str = Field(serialization_alias="csrfToken")


class MessageResponse(BaseModel):
    message: str
