# settings_routes.py
import logging

from fastapi import APIRouter, Body, Depends
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from .auth import Actor, get_actor
from .crud import parse_id
from .database import get_db, transaction
from .errors import AuthorizationError, NotFoundError, ValidationError, format_validation_errors
from .models import Settings, User
from .responses import success
from .schemas import SettingsUpdate

logger = logging.getLogger(__name__)


def get_or_create_settings(db: Session, actor: Actor, raw_user_id) -> Settings:
    """Return the user's settings, creating the default row on first access."""
    user_id = parse_id(raw_user_id)
    if not actor.is_admin and actor.user_id != user_id:
        raise AuthorizationError("You can only access your own settings")

    user = db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
    if user is None:
        raise NotFoundError("User not found")

    settings = (
        db.query(Settings)
        .filter(Settings.user_id == user_id, Settings.deleted_at.is_(None))
        .first()
    )
    if settings is None:
        settings = Settings(user_id=user_id)
        with transaction(db):
            db.add(settings)
        logger.info("Created default settings for user id=%s", user_id)
    return settings


def build_settings_router() -> APIRouter:
    router = APIRouter(prefix="/users/{user_id}/settings", tags=["settings"])

    @router.get("")
    def read_settings(user_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
        return success(get_or_create_settings(db, actor, user_id).as_dict())

    @router.put("")
    def update_settings(
        user_id: str,
        payload: dict = Body(...),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db),
    ):
        try:
            data = SettingsUpdate.model_validate(payload).model_dump(exclude_unset=True)
        except PydanticValidationError as e:
            raise ValidationError(format_validation_errors(e.errors())) from e
        for name, value in data.items():
            if value is None:
                raise ValidationError(f"{name} cannot be null")

        settings = get_or_create_settings(db, actor, user_id)
        with transaction(db):
            for name, value in data.items():
                setattr(settings, name, value)
        return success(settings.as_dict())

    return router
