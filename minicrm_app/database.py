# database.py
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import ConflictError, PersistenceError


def _clean_database_url(url: str) -> str:
    url = (url or "").strip()
    # Render/Heroku style URLs use postgres:// but SQLAlchemy wants an explicit dialect
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


class Base(DeclarativeBase):
    pass


def create_db_engine(url: str, pool_size: int = 10, max_overflow: int = 20, pool_recycle: int = 3600):
    url = _clean_database_url(url)
    if not url:
        raise RuntimeError("DATABASE_URL is empty.")

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_recycle=pool_recycle,
    )


def create_session_factory(engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


def get_db(request: Request):
    db = request.app.state.context.session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """Commit everything done inside the block, or roll it all back.

    Storage failures surface as a single ConflictError (unique/foreign key
    violations) or PersistenceError (everything else).
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"constraint violation: {e.orig}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(str(e)) from e
    except Exception:
        db.rollback()
        raise
