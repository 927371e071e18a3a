# barstock/services/profiles.py
"""User profiles (shareable custom IDs) and notification preferences."""
import logging
import re
import secrets
import string
import time
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from barstock.errors import InvalidInput, NotFound, StorageError
from barstock.models.users import UserProfile, UserPreferences

logger = logging.getLogger(__name__)

CUSTOM_ID_MAX_ATTEMPTS = 5

_CHARSET = string.ascii_uppercase + string.digits
_BASE36_DIGITS = string.digits + string.ascii_uppercase
_CUSTOM_ID_RE = re.compile(r"^[A-Z0-9]{8}$")

PREFERENCE_FIELDS = ("alert_low_stock", "alert_expiry", "alert_expiry_days", "alert_ai_suggestions")
DEFAULT_PREFERENCES = {
    "alert_low_stock": True,
    "alert_expiry": True,
    "alert_expiry_days": 7,
    "alert_ai_suggestions": True,
}


def _base36(number: int) -> str:
    digits = []
    while True:
        number, rem = divmod(number, 36)
        digits.append(_BASE36_DIGITS[rem])
        if number == 0:
            return "".join(reversed(digits))


def generate_custom_id(now_ms: Optional[int] = None) -> str:
    """6 random alphanumerics followed by the last 2 base-36 digits of the clock in ms."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    random_part = "".join(secrets.choice(_CHARSET) for _ in range(6))
    return random_part + _base36(now_ms)[-2:]


def normalize_custom_id(custom_id: str) -> str:
    code = (custom_id or "").strip().upper()
    if not _CUSTOM_ID_RE.match(code):
        raise InvalidInput("custom_id must be 8 letters or digits")
    return code


def get_profile(db: Session, user_id: str) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(UserProfile.user_id == user_id).first()


def get_or_create_profile(db: Session, user_id: str, custom_id: Optional[str] = None) -> UserProfile:
    """Return the user's profile, creating it if absent.

    Two concurrent creators race on the unique user_id; the loser rolls back and
    returns the winner's row. A unique violation on custom_id instead means a
    code collision, so a new code is generated and the insert retried.
    """
    profile = get_profile(db, user_id)
    if profile is not None:
        return profile

    code = normalize_custom_id(custom_id) if custom_id else generate_custom_id()
    for attempt in range(1, CUSTOM_ID_MAX_ATTEMPTS + 1):
        profile = UserProfile(user_id=user_id, custom_id=code)
        db.add(profile)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = get_profile(db, user_id)
            if existing is not None:
                return existing
            logger.warning("custom_id collision on %s (attempt %d)", code, attempt)
            code = generate_custom_id()
            continue
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to create profile for %s", user_id)
            raise StorageError("Failed to create profile")
        db.refresh(profile)
        return profile

    raise StorageError("Could not generate a unique custom ID")


def update_display_name(db: Session, user_id: str, display_name: Optional[str]) -> UserProfile:
    profile = get_profile(db, user_id)
    if profile is None:
        raise NotFound("Profile not found")
    profile.display_name = (display_name or "").strip() or None
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to update profile for %s", user_id)
        raise StorageError("Failed to update profile")
    db.refresh(profile)
    return profile


def lookup_by_custom_id(db: Session, custom_id: str) -> UserProfile:
    code = (custom_id or "").strip().upper()
    profile = db.query(UserProfile).filter(UserProfile.custom_id == code).first()
    if profile is None:
        raise NotFound("User not found")
    return profile


# ---- preferences ----

def _preference_values(values: dict) -> dict:
    return {k: v for k, v in (values or {}).items() if k in PREFERENCE_FIELDS and v is not None}


def get_preferences(db: Session, user_id: str) -> Optional[UserPreferences]:
    return db.query(UserPreferences).filter(UserPreferences.user_id == user_id).first()


def create_preferences(db: Session, user_id: str, values: Optional[dict] = None) -> UserPreferences:
    existing = get_preferences(db, user_id)
    if existing is not None:
        return existing

    prefs = UserPreferences(user_id=user_id, **{**DEFAULT_PREFERENCES, **_preference_values(values)})
    db.add(prefs)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_preferences(db, user_id)
        if existing is None:
            raise StorageError("Failed to create preferences")
        return existing
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to create preferences for %s", user_id)
        raise StorageError("Failed to create preferences")
    db.refresh(prefs)
    return prefs


def update_preferences(db: Session, user_id: str, values: dict) -> UserPreferences:
    changes = _preference_values(values)
    if not changes:
        raise InvalidInput("No fields to update")

    prefs = get_preferences(db, user_id)
    if prefs is None:
        raise NotFound("Preferences not found")

    for key, value in changes.items():
        setattr(prefs, key, value)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to update preferences for %s", user_id)
        raise StorageError("Failed to update preferences")
    db.refresh(prefs)
    return prefs
