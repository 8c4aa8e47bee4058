"""
Pydantic schemas for registration, login and profile endpoints.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class RegisterRequest(BaseModel):
    email: EmailStr = Field(description="Login e-mail (stored lower-cased)")
    password: str = Field(min_length=6, max_length=128, description="Plain password, hashed with bcrypt")
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    country_code: str = Field(min_length=1, max_length=8, description="Dialling code such as +91")
    mobile: str = Field(pattern=r"^\+?\d{10,15}$", description="Mobile number, 10 to 15 digits")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "asha@example.com",
                "password": "s3cret-pass",
                "first_name": "Asha",
                "last_name": "Rao",
                "country_code": "+91",
                "mobile": "9876543210",
            }
        }


class EmailOrMobile(BaseModel):
    """Identifies an account by e-mail or mobile; one of them is required."""
    email: Optional[str] = None
    mobile: Optional[str] = None

    @model_validator(mode="after")
    def require_one(self):
        if not self.email and not self.mobile:
            raise ValueError("email or mobile is required")
        return self


class VerifyOtpRequest(EmailOrMobile):
    otp: str = Field(min_length=6, max_length=6)


class ResendOtpRequest(EmailOrMobile):
    pass


class LoginRequest(BaseModel):
    username: str = Field(description="E-mail address or phone number")
    password: str


class ForgetPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=6, max_length=6)
    new_password: str = Field(min_length=6, max_length=128)
    confirm_password: str = Field(min_length=6, max_length=128)
