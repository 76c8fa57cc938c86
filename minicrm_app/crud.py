# crud.py
"""Generic create/list/get/update/delete over any registered entity."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Mapping

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Query, Session, selectinload

from .database import transaction
from .errors import InvalidIDError, NotFoundError, AuthorizationError, ValidationError, format_validation_errors
from .models import BASE_RECORD_FIELDS, utcnow
from .registry import ModelDefinition

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
MAX_ID = 2**63 - 1
# keeps (page - 1) * limit inside a signed 64-bit OFFSET
MAX_PAGE = MAX_ID // MAX_LIMIT

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def parse_id(raw) -> int:
    text = str(raw).strip()
    # isdigit() alone lets through unicode digits such as "²"
    if not (text.isascii() and text.isdigit()) or len(text) > len(str(MAX_ID)):
        raise InvalidIDError(f"Invalid ID: {raw}")
    value = int(text)
    if not 1 <= value <= MAX_ID:
        raise InvalidIDError(f"Invalid ID: {raw}")
    return value


def _to_int(raw, default: int) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


def parse_pagination(params: Mapping) -> tuple[int, int]:
    page = min(max(_to_int(params.get("page"), DEFAULT_PAGE), 1), MAX_PAGE)
    limit = _to_int(params.get("limit"), DEFAULT_LIMIT)
    return page, min(max(limit, 1), MAX_LIMIT)


def coerce_filter_value(column, raw: str):
    """Turn a query-string value into the column's Python type."""
    try:
        py_type = column.type.python_type
    except NotImplementedError:
        return raw
    try:
        if issubclass(py_type, bool):
            value = raw.strip().lower()
            if value in _TRUE:
                return True
            if value in _FALSE:
                return False
            raise ValueError(raw)
        if issubclass(py_type, int):
            value = int(raw)
            if abs(value) > MAX_ID:
                raise ValueError(raw)
            return value
        if issubclass(py_type, float):
            return float(raw)
        if issubclass(py_type, datetime):
            return datetime.fromisoformat(raw)
        if issubclass(py_type, date):
            return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"Invalid value for filter {column.key}: {raw}") from None
    return raw


class GenericCRUD:
    def __init__(self, definition: ModelDefinition):
        self.definition = definition
        self.model = definition.model
        mapper = sa_inspect(self.model)
        self._columns = {
            attr.key: attr.columns[0]
            for attr in mapper.column_attrs
            if attr.key not in BASE_RECORD_FIELDS
        }

    # ---------- queries ----------

    def _query(self, db: Session) -> Query:
        query = db.query(self.model).filter(self.model.deleted_at.is_(None))
        if self.definition.preload_fields:
            query = query.options(*[selectinload(getattr(self.model, name)) for name in self.definition.preload_fields])
        return query

    def _scope(self, query: Query, actor) -> Query:
        owner_field = self.definition.owner_field
        if owner_field and actor is not None and not actor.is_admin:
            query = query.filter(getattr(self.model, owner_field) == actor.user_id)
        return query

    def load(self, db: Session, actor, raw_id):
        """Fetch one live record the actor may see, or raise NotFoundError."""
        record_id = parse_id(raw_id)
        record = self._scope(self._query(db), actor).filter(self.model.id == record_id).first()
        if record is None:
            raise NotFoundError(f"{self.definition.name} not found")
        return record

    def reload(self, db: Session, record_id: int):
        return (
            self._query(db)
            .filter(self.model.id == record_id)
            .execution_options(populate_existing=True)
            .one()
        )

    def serialize(self, record) -> dict:
        return record.as_dict(include=self.definition.preload_fields)

    # ---------- validation ----------

    def _validate(self, schema: type[BaseModel], payload) -> BaseModel:
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        try:
            return schema.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(format_validation_errors(e.errors())) from e

    def _check_references(self, db: Session, record, fields, actor) -> None:
        owner_field = self.definition.owner_field
        for name, target in self.definition.descriptor.references.items():
            if name not in fields:
                continue
            value = getattr(record, name)
            if value is None:
                continue
            row = db.query(target).filter(target.id == value, target.deleted_at.is_(None)).first()
            if row is None:
                raise ValidationError(f"Referenced {target.__name__.lower()} does not exist")
            if actor is not None and actor.is_admin:
                continue
            if owner_field and getattr(row, owner_field, None) != getattr(record, owner_field):
                raise AuthorizationError(f"Referenced {target.__name__.lower()} belongs to another user")

    # ---------- operations ----------

    def create(self, db: Session, actor, payload):
        data = self._validate(self.definition.descriptor.create_schema, payload).model_dump()
        record = self.model(**{k: v for k, v in data.items() if k in self._columns})

        owner_field = self.definition.owner_field
        if owner_field:
            # client-supplied owners are never trusted
            setattr(record, owner_field, actor.user_id if actor is not None else None)

        self.definition.policy.before_write(db, record, data, actor, True)
        self._check_references(db, record, self.definition.descriptor.references, actor)

        with transaction(db):
            db.add(record)
            db.flush()
            self.definition.policy.after_create(db, record, actor)

        logger.info("Created %s id=%s", self.definition.name, record.id)
        return self.reload(db, record.id)

    def list(self, db: Session, actor, params: Mapping):
        page, limit = parse_pagination(params)
        query = self._scope(self._query(db), actor)

        for name in self.definition.allowed_filters:
            raw = params.get(name)
            if raw is None:
                continue
            column = getattr(self.model, name)
            query = query.filter(column == coerce_filter_value(column, raw))

        total = query.order_by(None).count()
        records = query.order_by(self.model.id).offset((page - 1) * limit).limit(limit).all()
        meta = {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        }
        return records, meta

    def get(self, db: Session, actor, raw_id):
        return self.load(db, actor, raw_id)

    def update(self, db: Session, actor, raw_id, payload, schema: type[BaseModel] | None = None):
        record = self.load(db, actor, raw_id)
        update = self._validate(schema or self.definition.descriptor.update_schema, payload)
        data = update.model_dump(exclude_unset=True)

        owner_field = self.definition.owner_field
        if owner_field:
            data.pop(owner_field, None)

        for name, value in data.items():
            column = self._columns.get(name)
            if value is None and column is not None and not column.nullable:
                raise ValidationError(f"{name} cannot be null")

        self.definition.policy.before_write(db, record, data, actor, False)
        for name, value in data.items():
            if name in self._columns:
                setattr(record, name, value)
        self._check_references(db, record, data, actor)

        with transaction(db):
            db.add(record)

        logger.info("Updated %s id=%s fields=%s", self.definition.name, record.id, sorted(data))
        return self.reload(db, record.id)

    def delete(self, db: Session, actor, raw_id) -> None:
        record = self.load(db, actor, raw_id)
        policy = self.definition.policy

        with transaction(db):
            policy.cascade_delete(db, record, actor)
            query = self._scope(
                db.query(self.model).filter(self.model.id == record.id, self.model.deleted_at.is_(None)),
                actor,
            )
            if policy.soft_delete:
                affected = query.update({self.model.deleted_at: utcnow()}, synchronize_session=False)
            else:
                affected = query.delete(synchronize_session=False)
            if not affected:
                raise NotFoundError(f"{self.definition.name} not found")

        logger.info(
            "%s %s id=%s", "Soft-deleted" if policy.soft_delete else "Deleted", self.definition.name, record.id
        )
