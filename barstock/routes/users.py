# barstock/routes/users.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from barstock.database import get_db
from barstock.errors import NotFound
from barstock.services import profiles
from barstock.utils.audit import write_log
from barstock.utils.auth import AuthUser, get_current_user
from barstock.schemas.user import (
    PreferencesIn, PreferencesOut, ProfileCreate, ProfileCreated,
    ProfileOut, ProfileUpdate, UserLookup,
)

router = APIRouter(prefix="/api/users", tags=["Users"])


# =========================
# PROFILE
# =========================
@router.get("/profile", response_model=ProfileOut)
def get_profile(
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    profile = profiles.get_profile(db, current_user.user_id)
    if profile is None:
        raise NotFound("Profile not found")
    return profile


# Idempotent: an existing profile is returned unchanged
@router.post("/profile", response_model=ProfileCreated)
def create_profile(
    request: Request,
    payload: ProfileCreate = ProfileCreate(),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    existed = profiles.get_profile(db, current_user.user_id) is not None
    profile = profiles.get_or_create_profile(db, current_user.user_id, custom_id=payload.custom_id)
    if not existed:
        write_log(
            db, user_id=current_user.user_id, action="PROFILE_CREATE", resource="users",
            ip=request.client.host if request.client else None, meta={"custom_id": profile.custom_id},
        )
    return {"success": True, "custom_id": profile.custom_id}


@router.put("/profile", response_model=ProfileOut)
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    return profiles.update_display_name(db, current_user.user_id, payload.display_name)


@router.get("/lookup/{custom_id}", response_model=UserLookup)
def lookup_user(
    custom_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    return profiles.lookup_by_custom_id(db, custom_id)


# =========================
# PREFERENCES
# =========================
@router.get("/preferences", response_model=PreferencesOut)
def get_preferences(
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    prefs = profiles.get_preferences(db, current_user.user_id)
    if prefs is None:
        raise NotFound("Preferences not found")
    return prefs


@router.post("/preferences", response_model=PreferencesOut)
def create_preferences(
    payload: PreferencesIn = PreferencesIn(),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    return profiles.create_preferences(db, current_user.user_id, payload.model_dump(exclude_none=True))


@router.put("/preferences", response_model=PreferencesOut)
def update_preferences(
    payload: PreferencesIn,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    return profiles.update_preferences(db, current_user.user_id, payload.model_dump(exclude_none=True))
