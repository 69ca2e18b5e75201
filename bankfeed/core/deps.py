from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from bankfeed.core.database import get_db
from bankfeed import models


def get_current_user(db: Session = Depends(get_db)) -> models.User:
    """Resolve the acting user without authentication.

    The lowest-id user owns every request; an empty database gets the
    ``demo@example.com`` user that ``bankfeed.seed`` also creates. Tests
    override this dependency to act as other users.
    """
    user = db.query(models.User).order_by(models.User.id).first()
    if not user:
        user = models.User(email="demo@example.com", is_active=True)
        db.add(user)
        db.commit()
        db.refresh(user)
    return user
