"""Auth and account Pydantic schemas."""

from pydantic import Field, field_validator

from .base import CamelModel

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(CamelModel):
    email: str = Field(..., pattern=_EMAIL_PATTERN, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: str | None = Field(None, max_length=128)


class LoginRequest(CamelModel):
    email: str
    password: str


class TokenRequest(CamelModel):
    token: str = Field(..., min_length=1)


class ForgotPasswordRequest(CamelModel):
    email: str = Field(..., pattern=_EMAIL_PATTERN)


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class ProfileUpdate(CamelModel):
    name: str | None = Field(None, max_length=128)
    phone_number: str | None = Field(None, max_length=32)
    preferred_ai_model: str | None = None
    business_sector: str | None = Field(None, max_length=50)
    company_size: str | None = Field(None, max_length=20)

    @field_validator("preferred_ai_model")
    @classmethod
    def validate_model(cls, v: str | None) -> str | None:
        from easyscrapy.constants import AI_MODELS

        if v is not None and v not in {m["id"] for m in AI_MODELS}:
            raise ValueError(f"Unknown AI model: {v}")
        return v
