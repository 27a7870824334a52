from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator


class UploadResponse(BaseModel):
    success: bool = True
    upload_id: str


class CheckoutRequest(BaseModel):
    model_config = {"extra": "ignore"}
    upload_id: str = Field(default="", description="ID returned by /pre-upload")
    email: Optional[EmailStr] = None

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CheckoutResponse(BaseModel):
    url: str


class OrderStatusResponse(BaseModel):
    status: str
    video_url: Optional[str] = None
    error: Optional[str] = None
