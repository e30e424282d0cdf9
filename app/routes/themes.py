"""
Theme routes: the prompt seeds automatic generation picks from.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..models.theme import Theme
from ..models.user import User
from ..auth import get_admin_user
from ..responses import conflict, not_found
from ..schemas.theme import ThemeCreate, ThemeUpdate, ThemeResponse

router = APIRouter(prefix="/api/themes", tags=["themes"])


@router.get("", response_model=List[ThemeResponse])
def get_themes(
    active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user),
):
    query = db.query(Theme)
    if active is not None:
        query = query.filter(Theme.active.is_(active))
    return query.order_by(Theme.id).all()


@router.post("", response_model=ThemeResponse, status_code=201)
def create_theme(
    theme_data: ThemeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user),
):
    theme = Theme(**theme_data.model_dump())
    db.add(theme)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        conflict(f"Theme '{theme_data.name}' already exists")
    db.refresh(theme)
    return theme


@router.patch("/{theme_id}", response_model=ThemeResponse)
def update_theme(
    theme_id: int,
    theme_data: ThemeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user),
):
    """Update a theme. Deactivated themes are skipped by random selection."""
    theme = db.get(Theme, theme_id)
    if not theme:
        not_found("Theme", theme_id)

    for field, value in theme_data.model_dump(exclude_unset=True).items():
        setattr(theme, field, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        conflict(f"Theme '{theme_data.name}' already exists")
    db.refresh(theme)
    return theme
