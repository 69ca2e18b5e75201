from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.core import errors
from bankfeed.core.database import get_db
from bankfeed.core.deps import get_current_user
from bankfeed.schemas import CategoryCreate, CategoryOut
from bankfeed.services.ownership import list_categories


router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=list[CategoryOut])
def get_categories(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    return list_categories(db, current_user.id)


@router.post("", response_model=CategoryOut, status_code=201)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    exists = (
        db.query(models.Category)
        .filter(models.Category.user_id == current_user.id, models.Category.name == payload.name)
        .first()
    )
    if exists:
        raise errors.ConflictError("Category with same name already exists for user")
    category = models.Category(user_id=current_user.id, name=payload.name, type=payload.type)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category
