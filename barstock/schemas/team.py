# barstock/schemas/team.py
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class TeamCreate(BaseModel):
    name: str


class TeamOut(BaseModel):
    id: int
    name: str
    owner_user_id: str
    role: Optional[str] = None  # Caller's role in the team
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MemberAdd(BaseModel):
    user_id: str


class MemberOut(BaseModel):
    id: int
    team_id: int
    user_id: str
    role: str
    allowed_routes: Optional[List[str]] = None
    display_name: Optional[str] = None
    custom_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# None grants access to every section
class AllowedRoutesUpdate(BaseModel):
    allowed_routes: Optional[List[str]] = None


class JoinTeamRequest(BaseModel):
    owner_custom_id: str = ""


class JoinTeamResponse(BaseModel):
    success: bool = True
    team_id: int
    team_name: str
    message: str = "Successfully joined the team"


class CurrentTeamOut(BaseModel):
    team: Optional[TeamOut] = None
    member: Optional[MemberOut] = None
    routes: Dict[str, bool]
