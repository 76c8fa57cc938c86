# dynamic_router.py
"""Mount the five generic REST operations plus custom endpoints for every registered entity."""

import logging

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from sqlalchemy.orm import Session

from .auth import Actor, get_actor, get_optional_actor, require_admin
from .crud import GenericCRUD
from .database import get_db
from .registry import ModelDefinition, ModelRegistry
from .responses import success

logger = logging.getLogger(__name__)


def build_entity_router(definition: ModelDefinition) -> APIRouter:
    crud = GenericCRUD(definition)
    actor_dep = get_actor if definition.requires_auth else get_optional_actor
    dependencies = [Depends(require_admin)] if definition.requires_admin else []
    router = APIRouter(prefix=f"/{definition.path}", tags=[definition.name], dependencies=dependencies)
    slug = definition.path.replace("/", "_")

    def create_record(
        payload: dict = Body(...),
        actor: Actor | None = Depends(actor_dep),
        db: Session = Depends(get_db),
    ):
        return success(crud.serialize(crud.create(db, actor, payload)))

    def list_records(
        request: Request,
        actor: Actor | None = Depends(actor_dep),
        db: Session = Depends(get_db),
    ):
        records, meta = crud.list(db, actor, request.query_params)
        return success([crud.serialize(r) for r in records], meta)

    def get_record(
        item_id: str,
        actor: Actor | None = Depends(actor_dep),
        db: Session = Depends(get_db),
    ):
        return success(crud.serialize(crud.get(db, actor, item_id)))

    def update_record(
        item_id: str,
        payload: dict = Body(...),
        actor: Actor | None = Depends(actor_dep),
        db: Session = Depends(get_db),
    ):
        return success(crud.serialize(crud.update(db, actor, item_id, payload)))

    def delete_record(
        item_id: str,
        actor: Actor | None = Depends(actor_dep),
        db: Session = Depends(get_db),
    ):
        crud.delete(db, actor, item_id)
        return success(True)

    router.add_api_route("/", create_record, methods=["POST"], status_code=201, name=f"create_{slug}")
    router.add_api_route("/", list_records, methods=["GET"], name=f"list_{slug}")
    router.add_api_route("/{item_id}", get_record, methods=["GET"], name=f"get_{slug}")
    router.add_api_route("/{item_id}", update_record, methods=["PUT"], name=f"update_{slug}")
    router.add_api_route("/{item_id}", delete_record, methods=["DELETE"], name=f"delete_{slug}")

    for endpoint in definition.custom_endpoints:
        router.add_api_route(
            endpoint.path,
            endpoint.handler,
            methods=[endpoint.method],
            summary=endpoint.description,
        )
    return router


def register_dynamic_routes(app: FastAPI, registry: ModelRegistry, prefix: str = "/api/v1") -> None:
    for name, definition in registry.get_models().items():
        app.include_router(build_entity_router(definition), prefix=prefix)
        logger.info(
            "Mounted %s at %s/%s (%d custom endpoints)",
            name, prefix, definition.path, len(definition.custom_endpoints),
        )
