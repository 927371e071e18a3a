# barstock/routes/teams.py
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from barstock.constants import ROUTE_KEYS
from barstock.database import get_db
from barstock.services import teams as team_service
from barstock.utils.audit import write_log
from barstock.utils.auth import AuthUser, TeamContext, get_current_user, get_team_context
from barstock.schemas.team import (
    AllowedRoutesUpdate, CurrentTeamOut, JoinTeamRequest, JoinTeamResponse,
    MemberAdd, MemberOut, TeamCreate, TeamOut,
)

router = APIRouter(prefix="/api/teams", tags=["Teams"])


def _ip(request: Request):
    return request.client.host if request.client else None


@router.get("", response_model=List[TeamOut])
def list_my_teams(
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    return [
        TeamOut(id=t.id, name=t.name, owner_user_id=t.owner_user_id, role=role, created_at=t.created_at)
        for t, role in team_service.list_teams(db, current_user.user_id)
    ]


@router.post("", response_model=TeamOut)
def create_team(
    payload: TeamCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    team = team_service.create_team(db, current_user.user_id, payload.name)
    write_log(
        db, user_id=current_user.user_id, team_id=team.id, action="TEAM_CREATE", resource="teams",
        ip=_ip(request), meta={"name": team.name},
    )
    return TeamOut(id=team.id, name=team.name, owner_user_id=team.owner_user_id, role="owner", created_at=team.created_at)


# Active team for this request plus the caller's section permissions
@router.get("/current", response_model=CurrentTeamOut)
def current_team(
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(get_team_context),
):
    if ctx.team_id is None or ctx.member is None:
        # Without a team only the settings section is reachable
        return {"team": None, "member": None, "routes": {key: key == "settings" for key in ROUTE_KEYS}}

    team = team_service.get_team(db, ctx.team_id)
    return {
        "team": TeamOut(id=team.id, name=team.name, owner_user_id=team.owner_user_id,
                        role=ctx.member.role, created_at=team.created_at),
        "member": MemberOut.model_validate(ctx.member),
        "routes": team_service.route_map(ctx.member),
    }


# ---- membership ----

@router.get("/{team_id}/members", response_model=List[MemberOut])
def list_members(
    team_id: int,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    return team_service.list_members(db, team_id, current_user.user_id)


@router.post("/{team_id}/members", response_model=MemberOut)
def add_member(
    team_id: int,
    payload: MemberAdd,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    member = team_service.add_member(db, team_id, current_user.user_id, payload.user_id)
    write_log(
        db, user_id=current_user.user_id, team_id=team_id, action="TEAM_MEMBER_ADD", resource="teams",
        ip=_ip(request), meta={"member_id": member.id, "user_id": member.user_id},
    )
    return member


@router.put("/{team_id}/members/{member_id}/routes", response_model=MemberOut)
def set_member_routes(
    team_id: int,
    member_id: int,
    payload: AllowedRoutesUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    member = team_service.set_allowed_routes(db, team_id, current_user.user_id, member_id, payload.allowed_routes)
    write_log(
        db, user_id=current_user.user_id, team_id=team_id, action="TEAM_MEMBER_ROUTES", resource="teams",
        ip=_ip(request), meta={"member_id": member.id, "allowed_routes": member.allowed_routes},
    )
    return member


@router.delete("/{team_id}/members/{member_id}")
def remove_member(
    team_id: int,
    member_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    team_service.remove_member(db, team_id, current_user.user_id, member_id)
    write_log(
        db, user_id=current_user.user_id, team_id=team_id, action="TEAM_MEMBER_REMOVE", resource="teams",
        ip=_ip(request), meta={"member_id": member_id},
    )
    return {"success": True}


@router.post("/join", response_model=JoinTeamResponse)
def join_team(
    payload: JoinTeamRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    team = team_service.join_team_by_custom_id(db, current_user.user_id, payload.owner_custom_id)
    write_log(
        db, user_id=current_user.user_id, team_id=team.id, action="TEAM_JOIN", resource="teams",
        ip=_ip(request), meta={"owner_custom_id": payload.owner_custom_id.strip().upper()},
    )
    return {"success": True, "team_id": team.id, "team_name": team.name, "message": "Successfully joined the team"}
