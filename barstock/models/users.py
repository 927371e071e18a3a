# barstock/models/users.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from barstock.database import Base


# Maps an authenticated user to a short shareable code used for team invitations
class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, nullable=False, index=True)
    custom_id = Column(String(8), unique=True, nullable=False, index=True)
    display_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# Notification preferences
class UserPreferences(Base):
    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, nullable=False, index=True)
    alert_low_stock = Column(Boolean, nullable=False, default=True)
    alert_expiry = Column(Boolean, nullable=False, default=True)
    alert_expiry_days = Column(Integer, nullable=False, default=7)
    alert_ai_suggestions = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
