# tasks.py
import logging

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .auth import Actor, get_actor
from .crud import GenericCRUD
from .database import get_db, transaction
from .responses import success

logger = logging.getLogger(__name__)


def toggle_task_completion(
    task_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Flip `completed` on one of the actor's tasks (any task for admins)."""
    crud = GenericCRUD(request.app.state.context.registry.get_model("Task"))
    task = crud.load(db, actor, task_id)
    with transaction(db):
        task.completed = not task.completed
    logger.info("Task id=%s completed=%s", task.id, task.completed)
    return success(crud.serialize(crud.reload(db, task.id)))
