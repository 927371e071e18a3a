from barstock.models.team import Team, TeamMember, MemberRole
from barstock.models.product import Product, Stock
from barstock.models.stock import StockMovement, MovementType, MovementDirection
from barstock.models.users import UserProfile, UserPreferences
from barstock.models.log import Log

__all__ = [
    "Team", "TeamMember", "MemberRole",
    "Product", "Stock",
    "StockMovement", "MovementType", "MovementDirection",
    "UserProfile", "UserPreferences",
    "Log",
]
