# barstock/models/team.py
import enum
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, JSON, UniqueConstraint, func
from sqlalchemy.orm import relationship
from barstock.database import Base


class MemberRole(str, enum.Enum):
    OWNER = "owner"
    MEMBER = "member"


# Tenancy boundary: every product belongs to exactly one team
class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    owner_user_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan", order_by="TeamMember.id")
    products = relationship("Product", back_populates="team", cascade="all, delete-orphan", passive_deletes=True)


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    role = Column(String(16), nullable=False, default=MemberRole.MEMBER.value)

    # NULL means access to every section; otherwise a list of route keys
    allowed_routes = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team", back_populates="members")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member_team_user"),
    )
