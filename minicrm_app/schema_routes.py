# schema_routes.py
from fastapi import APIRouter, Request

from .errors import NotFoundError
from .responses import success


def build_schema_router() -> APIRouter:
    router = APIRouter(prefix="/schema", tags=["schema"])

    @router.get("/")
    def list_schemas(request: Request):
        models = request.app.state.context.registry.get_models()
        return success({name: definition.to_dict() for name, definition in models.items()})

    @router.get("/{model}")
    def get_schema(model: str, request: Request):
        # accept the registry name ("Contact") or the route path ("contact")
        wanted = model.strip().lower()
        for name, definition in request.app.state.context.registry.get_models().items():
            if name.lower() == wanted or definition.path == wanted:
                return success(definition.to_dict())
        raise NotFoundError(f"Model {model} not found")

    return router
