# entities.py
"""
Built-in CRM entities and their delete/write policies.

Dependents are removed with bulk hard deletes inside the caller's
transaction, then the parent row itself is soft-deleted by the engine.
"""

import logging

from .errors import AuthorizationError
from .models import Contact, Deal, Note, Settings, Task, User
from .registry import EntityDescriptor, EntityPolicy, ModelRegistry
from .schemas import (
    ContactCreate,
    ContactUpdate,
    DealCreate,
    DealUpdate,
    NoteCreate,
    NoteUpdate,
    SettingsCreate,
    SettingsUpdate,
    TaskCreate,
    TaskUpdate,
    UserCreate,
    UserUpdate,
)
from .security import DEFAULT_ROUNDS, hash_password
from .tasks import toggle_task_completion

logger = logging.getLogger(__name__)


def _purge_deal_dependents(db, deal_ids) -> None:
    if not deal_ids:
        return
    db.query(Task).filter(Task.deal_id.in_(deal_ids)).delete(synchronize_session=False)
    db.query(Note).filter(Note.deal_id.in_(deal_ids)).delete(synchronize_session=False)


class UserPolicy(EntityPolicy):
    def __init__(self, bcrypt_rounds: int = DEFAULT_ROUNDS):
        self.bcrypt_rounds = bcrypt_rounds

    def before_write(self, db, record, data, actor, creating):
        password = data.get("password")
        if password:
            record.password_hash = hash_password(password, self.bcrypt_rounds)

    def after_create(self, db, record, actor):
        db.add(Settings(user_id=record.id))

    def cascade_delete(self, db, record, actor):
        if actor is not None and actor.user_id == record.id:
            raise AuthorizationError("You cannot delete your own account")
        for model in (Note, Task, Deal, Contact, Settings):
            removed = db.query(model).filter(model.user_id == record.id).delete(synchronize_session=False)
            if removed:
                logger.info("Removed %d %s rows of user id=%s", removed, model.__name__, record.id)


class SettingsPolicy(EntityPolicy):
    # hard delete so a lazily re-created row can reuse the unique user_id
    soft_delete = False


class ContactPolicy(EntityPolicy):
    def cascade_delete(self, db, record, actor):
        deal_ids = [row.id for row in db.query(Deal.id).filter(Deal.contact_id == record.id)]
        db.query(Note).filter(Note.contact_id == record.id).delete(synchronize_session=False)
        _purge_deal_dependents(db, deal_ids)
        if deal_ids:
            db.query(Deal).filter(Deal.id.in_(deal_ids)).delete(synchronize_session=False)


class DealPolicy(EntityPolicy):
    def cascade_delete(self, db, record, actor):
        _purge_deal_dependents(db, [record.id])


def register_entities(registry: ModelRegistry, bcrypt_rounds: int = DEFAULT_ROUNDS) -> None:
    registry.register_model(
        EntityDescriptor("User", User, UserCreate, UserUpdate, policy=UserPolicy(bcrypt_rounds)),
        preload_fields=("settings",),
        allowed_filters=("email", "role", "username"),
        requires_admin=True,
    )
    registry.register_model(
        EntityDescriptor("Settings", Settings, SettingsCreate, SettingsUpdate, owner_field="user_id", policy=SettingsPolicy()),
        allowed_filters=("user_id", "theme"),
    )
    registry.register_model(
        EntityDescriptor("Contact", Contact, ContactCreate, ContactUpdate, owner_field="user_id", policy=ContactPolicy()),
        preload_fields=("notes", "deals"),
        allowed_filters=("stage", "company", "user_id"),
    )
    registry.register_model(
        EntityDescriptor(
            "Deal", Deal, DealCreate, DealUpdate,
            owner_field="user_id",
            references={"contact_id": Contact},
            policy=DealPolicy(),
        ),
        preload_fields=("contact", "tasks"),
        allowed_filters=("status", "contact_id", "user_id"),
    )
    registry.register_model(
        EntityDescriptor("Task", Task, TaskCreate, TaskUpdate, owner_field="user_id", references={"deal_id": Deal}),
        preload_fields=("deal",),
        allowed_filters=("completed", "deal_id", "user_id"),
    )
    registry.register_model(
        EntityDescriptor(
            "Note", Note, NoteCreate, NoteUpdate,
            owner_field="user_id",
            references={"contact_id": Contact, "deal_id": Deal},
        ),
        preload_fields=("contact", "deal"),
        allowed_filters=("contact_id", "deal_id", "user_id"),
    )

    registry.register_custom_endpoint(
        "Task", "/{task_id}/toggle", "PATCH", "Flip a task's completed flag", toggle_task_completion
    )
