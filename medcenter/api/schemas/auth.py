from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    # A guest hold started before signing in; linked to the account on success
    guest_identifier: str | None = None


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str | None = None
    name: str | None = None  # booking form sends "name"; used when full_name is absent
    phone: str | None = None
    guest_identifier: str | None = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    # Set when a guest hold was linked during sign-in
    appointment_id: int | None = None


class RefreshRequest(BaseModel):
    refresh_token: str
