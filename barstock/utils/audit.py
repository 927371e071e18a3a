import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from barstock.models.log import Log

logger = logging.getLogger(__name__)


def write_log(db: Session, *, user_id, action, resource, status="SUCCESS", team_id=None, ip=None, meta=None):
    entry = Log(user_id=user_id, team_id=team_id, action=action, resource=resource, status=status, ip=ip, meta=meta or {})
    db.add(entry)
    try:
        db.commit()
    except SQLAlchemyError:
        # The audited operation is already committed; losing the audit row must not fail the request
        db.rollback()
        logger.exception("Failed to write audit log %s/%s", resource, action)
