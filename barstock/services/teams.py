# barstock/services/teams.py
"""Team scoping and per-member route permissions."""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from barstock.constants import ROUTE_KEYS, ALWAYS_ALLOWED_ROUTES
from barstock.errors import Conflict, Forbidden, InvalidInput, NotFound, StorageError
from barstock.models.team import Team, TeamMember, MemberRole
from barstock.models.users import UserProfile

logger = logging.getLogger(__name__)


def get_team(db: Session, team_id: int) -> Team:
    team = db.query(Team).filter(Team.id == team_id).first()
    if team is None:
        raise NotFound("Team not found")
    return team


def get_membership(db: Session, team_id: int, user_id: str) -> Optional[TeamMember]:
    return (
        db.query(TeamMember)
        .filter(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        .first()
    )


def resolve_active_team(db: Session, user_id: str, requested_team_id: Optional[int] = None) -> Optional[int]:
    """Pick the team whose data this request sees.

    A requested team wins when the user belongs to it. Otherwise an owned team
    is preferred, then the oldest membership. None means the user has no team.
    """
    if requested_team_id is not None:
        membership = get_membership(db, requested_team_id, user_id)
        if membership is not None:
            return membership.team_id
        logger.warning("User %s requested team %s but is not a member", user_id, requested_team_id)

    row = (
        db.query(TeamMember.team_id)
        .join(Team, Team.id == TeamMember.team_id)
        .filter(TeamMember.user_id == user_id)
        .order_by(
            case((Team.owner_user_id == TeamMember.user_id, 0), else_=1),
            TeamMember.id.asc(),
        )
        .first()
    )
    return row.team_id if row else None


def is_route_allowed(member, route_key: str) -> bool:
    if member.role == MemberRole.OWNER.value:
        return True
    if route_key in ALWAYS_ALLOWED_ROUTES:
        return True
    if member.allowed_routes is None:
        return True
    return route_key in member.allowed_routes


def route_map(member) -> Dict[str, bool]:
    return {key: is_route_allowed(member, key) for key in ROUTE_KEYS}


def normalize_routes(routes: Optional[Iterable[str]]) -> Optional[List[str]]:
    """Validate an allow-list; a list covering every section collapses to None (full access)."""
    if routes is None:
        return None
    keys = set()
    for route in routes:
        if route not in ROUTE_KEYS:
            raise InvalidInput(f"Unknown route: {route}")
        keys.add(route)
    if keys | ALWAYS_ALLOWED_ROUTES >= set(ROUTE_KEYS):
        return None
    return [key for key in ROUTE_KEYS if key in keys]


def _require_owner(team: Team, user_id: str) -> None:
    if team.owner_user_id != user_id:
        raise Forbidden("Only the team owner can manage members")


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to %s", what)
        raise StorageError(f"Failed to {what}")


def create_team(db: Session, owner_user_id: str, name: str) -> Team:
    name = (name or "").strip()
    if not name:
        raise InvalidInput("Team name is required")

    # Team and its owner membership are written together
    team = Team(name=name, owner_user_id=owner_user_id)
    team.members.append(TeamMember(user_id=owner_user_id, role=MemberRole.OWNER.value, allowed_routes=None))
    db.add(team)
    _commit(db, "create team")
    db.refresh(team)
    return team


def list_teams(db: Session, user_id: str):
    return (
        db.query(Team, TeamMember.role)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .filter(TeamMember.user_id == user_id)
        .order_by(TeamMember.id.asc())
        .all()
    )


def list_members(db: Session, team_id: int, user_id: str) -> List[dict]:
    get_team(db, team_id)
    membership = get_membership(db, team_id, user_id)
    if membership is None:
        raise Forbidden("You are not a member of this team")
    if not is_route_allowed(membership, "teams"):
        raise Forbidden("You do not have access to 'teams'")

    rows = (
        db.query(TeamMember, UserProfile.display_name, UserProfile.custom_id)
        .outerjoin(UserProfile, UserProfile.user_id == TeamMember.user_id)
        .filter(TeamMember.team_id == team_id)
        .order_by(TeamMember.id.asc())
        .all()
    )
    return [
        {
            "id": m.id,
            "team_id": m.team_id,
            "user_id": m.user_id,
            "role": m.role,
            "allowed_routes": m.allowed_routes,
            "created_at": m.created_at,
            "display_name": display_name,
            "custom_id": custom_id,
        }
        for m, display_name, custom_id in rows
    ]


def _insert_member(db: Session, team_id: int, user_id: str, conflict_message: str) -> TeamMember:
    member = TeamMember(team_id=team_id, user_id=user_id, role=MemberRole.MEMBER.value, allowed_routes=None)
    db.add(member)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same membership
        db.rollback()
        raise Conflict(conflict_message)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to add member %s to team %s", user_id, team_id)
        raise StorageError("Failed to add team member")
    db.refresh(member)
    return member


def add_member(db: Session, team_id: int, caller_user_id: str, target_user_id: str) -> TeamMember:
    team = get_team(db, team_id)
    _require_owner(team, caller_user_id)

    target_user_id = (target_user_id or "").strip()
    if not target_user_id:
        raise InvalidInput("user_id is required")
    if get_membership(db, team_id, target_user_id) is not None:
        raise Conflict("User is already a member")

    return _insert_member(db, team_id, target_user_id, "User is already a member")


def join_team_by_custom_id(db: Session, user_id: str, owner_custom_id: str) -> Team:
    code = (owner_custom_id or "").strip().upper()
    if not code:
        raise InvalidInput("owner_custom_id is required")

    owner = db.query(UserProfile).filter(UserProfile.custom_id == code).first()
    if owner is None:
        raise NotFound("User not found with this ID")
    if owner.user_id == user_id:
        raise InvalidInput("You cannot join your own team")

    team = (
        db.query(Team)
        .filter(Team.owner_user_id == owner.user_id)
        .order_by(Team.id.asc())
        .first()
    )
    if team is None:
        raise NotFound("This user does not have a team")

    message = "You are already a member of this team"
    if get_membership(db, team.id, user_id) is not None:
        raise Conflict(message)

    _insert_member(db, team.id, user_id, message)
    return team


def _get_member(db: Session, team_id: int, member_id: int) -> TeamMember:
    member = (
        db.query(TeamMember)
        .filter(TeamMember.id == member_id, TeamMember.team_id == team_id)
        .first()
    )
    if member is None:
        raise NotFound("Member not found")
    return member


def set_allowed_routes(db: Session, team_id: int, caller_user_id: str, member_id: int, routes) -> TeamMember:
    team = get_team(db, team_id)
    _require_owner(team, caller_user_id)
    member = _get_member(db, team_id, member_id)
    if member.role == MemberRole.OWNER.value:
        raise InvalidInput("The team owner always has full access")

    member.allowed_routes = normalize_routes(routes)
    _commit(db, "update member permissions")
    db.refresh(member)
    return member


def remove_member(db: Session, team_id: int, caller_user_id: str, member_id: int) -> None:
    team = get_team(db, team_id)
    _require_owner(team, caller_user_id)
    member = _get_member(db, team_id, member_id)
    if member.role == MemberRole.OWNER.value:
        raise InvalidInput("The team owner cannot be removed")

    db.delete(member)
    _commit(db, "remove team member")
