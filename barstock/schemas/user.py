from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProfileCreate(BaseModel):
    custom_id: Optional[str] = None  # Generated server-side when omitted


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None


# Output schema for user profile details
class ProfileOut(BaseModel):
    id: int
    user_id: str
    custom_id: str
    display_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProfileCreated(BaseModel):
    success: bool = True
    custom_id: str


class UserLookup(BaseModel):
    user_id: str
    display_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# Partial preference payload used by create and update
class PreferencesIn(BaseModel):
    alert_low_stock: Optional[bool] = None
    alert_expiry: Optional[bool] = None
    alert_expiry_days: Optional[int] = Field(default=None, ge=0, le=365)
    alert_ai_suggestions: Optional[bool] = None


class PreferencesOut(BaseModel):
    id: int
    user_id: str
    alert_low_stock: bool
    alert_expiry: bool
    alert_expiry_days: int
    alert_ai_suggestions: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
