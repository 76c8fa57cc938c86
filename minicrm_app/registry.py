"""
Model registry: the catalog of entities the API exposes.

An entity is registered once at startup with an ``EntityDescriptor`` (its
mapped class, its pydantic schemas, its owner field and delete policy). The
registry derives field and relation metadata from the SQLAlchemy mapper and
stores an immutable ``ModelDefinition`` that the router binder, the CRUD
engine and the schema endpoints read from.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Mapping

from pydantic import BaseModel
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapper, RelationshipDirection

from .errors import DuplicateRegistration, InvalidDescriptor, SchemaInitError, UnknownModel
from .models import BASE_RECORD_FIELDS

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


class EntityPolicy:
    """Per-entity hooks. The defaults do nothing and soft-delete."""

    soft_delete = True

    def before_write(self, db, record, data: dict, actor, creating: bool) -> None:
        pass

    def after_create(self, db, record, actor) -> None:
        pass

    def cascade_delete(self, db, record, actor) -> None:
        pass


@dataclass(frozen=True)
class EntityDescriptor:
    name: str
    model: type
    create_schema: type[BaseModel]
    update_schema: type[BaseModel]
    owner_field: str | None = None
    # column name -> mapped class it must point at
    references: Mapping[str, type] = field(default_factory=dict)
    policy: EntityPolicy = field(default_factory=EntityPolicy)
    path: str | None = None


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    type: str
    required: bool = False
    unique: bool = False
    nullable: bool = True
    label: str = ""
    help: str = ""
    min: float | None = None
    max: float | None = None
    options: tuple = ()

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "type": self.type,
            "required": self.required,
            "unique": self.unique,
            "label": self.label,
        }
        if self.help:
            data["help"] = self.help
        if self.min is not None:
            data["min"] = self.min
        if self.max is not None:
            data["max"] = self.max
        if self.options:
            data["options"] = list(self.options)
        return data


@dataclass(frozen=True)
class RelationDefinition:
    name: str
    type: str  # hasOne, hasMany, belongsTo
    model: str
    foreign_key: str | None = None

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type, "model": self.model, "foreign_key": self.foreign_key}


@dataclass(frozen=True)
class CustomEndpointDefinition:
    path: str
    method: str
    description: str
    handler: Callable[..., Any]

    def to_dict(self) -> dict:
        return {"path": self.path, "method": self.method, "description": self.description}


@dataclass(frozen=True)
class ModelDefinition:
    name: str
    descriptor: EntityDescriptor
    table_name: str
    fields: tuple[FieldDefinition, ...]
    relations: tuple[RelationDefinition, ...]
    preload_fields: tuple[str, ...] = ()
    allowed_filters: tuple[str, ...] = ()
    requires_auth: bool = True
    requires_admin: bool = False
    custom_endpoints: tuple[CustomEndpointDefinition, ...] = ()

    @property
    def model(self) -> type:
        return self.descriptor.model

    @property
    def owner_field(self) -> str | None:
        return self.descriptor.owner_field

    @property
    def policy(self) -> EntityPolicy:
        return self.descriptor.policy

    @property
    def path(self) -> str:
        return (self.descriptor.path or self.name.lower()).strip("/")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "table": self.table_name,
            "path": "/" + self.path,
            "fields": [f.to_dict() for f in self.fields],
            "relations": [r.to_dict() for r in self.relations],
            "preload": list(self.preload_fields),
            "filters": list(self.allowed_filters),
            "requires_auth": self.requires_auth,
            "requires_admin": self.requires_admin,
            "custom_endpoints": [e.to_dict() for e in self.custom_endpoints],
        }


class ReadWriteLock:
    """Many readers or one writer. Writers wait for readers to drain."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


def _type_name(column) -> str:
    try:
        py_type = column.type.python_type
    except NotImplementedError:
        return "string"
    if issubclass(py_type, bool):
        return "boolean"
    if issubclass(py_type, int):
        return "integer"
    if issubclass(py_type, float):
        return "number"
    if issubclass(py_type, datetime):
        return "datetime"
    if issubclass(py_type, date):
        return "date"
    return "string"


def _mapper_for(model) -> Mapper | None:
    if not isinstance(model, type):
        return None
    mapper = sa_inspect(model, raiseerr=False)
    return mapper if isinstance(mapper, Mapper) else None


def _describe_fields(mapper: Mapper, model, create_schema: type[BaseModel]) -> tuple[FieldDefinition, ...]:
    hidden = set(getattr(model, "__hidden__", ()))
    schema_fields = create_schema.model_fields
    fields = []
    for attr in mapper.column_attrs:
        name = attr.key
        if name in BASE_RECORD_FIELDS or name in hidden or name.startswith("_"):
            continue
        column = attr.columns[0]
        info = column.info or {}
        schema_field = schema_fields.get(name)
        fields.append(
            FieldDefinition(
                name=name,
                type=_type_name(column),
                required=bool(schema_field and schema_field.is_required()),
                unique=bool(column.unique),
                nullable=bool(column.nullable),
                label=info.get("label", name.replace("_", " ").capitalize()),
                help=info.get("help", ""),
                min=info.get("min"),
                max=info.get("max"),
                options=tuple(info.get("options", ())),
            )
        )
    return tuple(fields)


def _describe_relations(mapper: Mapper) -> tuple[RelationDefinition, ...]:
    relations = []
    for rel in mapper.relationships:
        if rel.direction is RelationshipDirection.MANYTOONE:
            kind = "belongsTo"
            columns = rel.local_columns
        else:
            kind = "hasMany" if rel.uselist else "hasOne"
            columns = rel.remote_side
        foreign_key = next((c.name for c in columns if c.foreign_keys), None)
        relations.append(RelationDefinition(rel.key, kind, rel.mapper.class_.__name__, foreign_key))
    return tuple(relations)


class ModelRegistry:
    def __init__(self):
        self._lock = ReadWriteLock()
        self._models: dict[str, ModelDefinition] = {}

    def register_model(
        self,
        descriptor: EntityDescriptor,
        preload_fields=(),
        allowed_filters=(),
        requires_auth: bool = True,
        requires_admin: bool = False,
    ) -> ModelDefinition:
        definition = self._build_definition(
            descriptor, tuple(preload_fields), tuple(allowed_filters), requires_auth, requires_admin
        )
        with self._lock.write():
            if descriptor.name in self._models:
                raise DuplicateRegistration(f"model {descriptor.name} is already registered")
            self._models[descriptor.name] = definition
        logger.info("Registered model %s with %d fields", descriptor.name, len(definition.fields))
        return definition

    def register_custom_endpoint(
        self,
        entity_name: str,
        path: str,
        method: str,
        description: str,
        handler: Callable[..., Any],
    ) -> None:
        method = (method or "").upper()
        if method not in HTTP_METHODS:
            raise InvalidDescriptor(f"unsupported HTTP method {method!r} for {entity_name}{path}")
        if not callable(handler):
            raise InvalidDescriptor(f"handler for {entity_name}{path} is not callable")
        endpoint = CustomEndpointDefinition(path, method, description, handler)
        with self._lock.write():
            definition = self._models.get(entity_name)
            if definition is None:
                raise UnknownModel(f"model {entity_name} is not registered")
            self._models[entity_name] = replace(
                definition, custom_endpoints=definition.custom_endpoints + (endpoint,)
            )
        logger.info("Registered custom endpoint %s %s for %s", method, path, entity_name)

    def get_model(self, name: str) -> ModelDefinition:
        with self._lock.read():
            definition = self._models.get(name)
        if definition is None:
            raise UnknownModel(f"model {name} is not registered")
        return definition

    def get_models(self) -> dict[str, ModelDefinition]:
        with self._lock.read():
            return dict(self._models)

    def initialize_tables(self, bind) -> None:
        """Create every registered entity's table that does not exist yet."""
        for name, definition in self.get_models().items():
            try:
                definition.model.__table__.create(bind=bind, checkfirst=True)
            except SQLAlchemyError as e:
                raise SchemaInitError(name, e) from e
            logger.info("Table %s ready for %s", definition.table_name, name)

    def _build_definition(self, descriptor, preload_fields, allowed_filters, requires_auth, requires_admin):
        mapper = _mapper_for(descriptor.model)
        if mapper is None:
            raise InvalidDescriptor(f"{descriptor.name}: {descriptor.model!r} is not a mapped class")
        for schema in (descriptor.create_schema, descriptor.update_schema):
            if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
                raise InvalidDescriptor(f"{descriptor.name}: {schema!r} is not a pydantic model")

        columns = {attr.key for attr in mapper.column_attrs}
        relationships = {rel.key for rel in mapper.relationships}
        for name in preload_fields:
            if name not in relationships:
                raise InvalidDescriptor(f"{descriptor.name}: preload {name!r} is not a relationship")
        for name in allowed_filters:
            if name not in columns:
                raise InvalidDescriptor(f"{descriptor.name}: filter {name!r} is not a column")
        if descriptor.owner_field and descriptor.owner_field not in columns:
            raise InvalidDescriptor(f"{descriptor.name}: owner field {descriptor.owner_field!r} is not a column")
        for name in descriptor.references:
            if name not in columns:
                raise InvalidDescriptor(f"{descriptor.name}: reference {name!r} is not a column")

        return ModelDefinition(
            name=descriptor.name,
            descriptor=descriptor,
            table_name=getattr(descriptor.model, "__tablename__", None) or descriptor.name,
            fields=_describe_fields(mapper, descriptor.model, descriptor.create_schema),
            relations=_describe_relations(mapper),
            preload_fields=preload_fields,
            allowed_filters=allowed_filters,
            requires_auth=requires_auth,
            requires_admin=requires_admin,
        )
