# main.py
import logging
from dataclasses import dataclass
from typing import Callable

from fastapi import FastAPI
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .auth import build_auth_router
from .config import AppConfig
from .database import create_db_engine, create_session_factory
from .dynamic_router import register_dynamic_routes
from .entities import register_entities
from .errors import register_exception_handlers
from .health import HealthChecker, build_health_router
from .middleware import install_middleware
from .registry import ModelRegistry
from .schema_routes import build_schema_router
from .security import TokenService
from .seed import ensure_default_admin
from .settings_routes import build_settings_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@dataclass
class AppContext:
    """Everything a request handler needs, built once per application."""

    config: AppConfig
    engine: Engine
    session_factory: sessionmaker
    registry: ModelRegistry
    tokens: TokenService


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def create_app(
    config: AppConfig | None = None,
    configure_registry: Callable[[ModelRegistry], None] | None = None,
) -> FastAPI:
    """Build the application. Registry and schema errors abort startup."""
    config = config or AppConfig.from_env()
    setup_logging(config.log_level)

    engine = create_db_engine(
        config.database_url,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_recycle=config.db_pool_recycle,
    )
    registry = ModelRegistry()
    register_entities(registry, config.bcrypt_rounds)
    if configure_registry is not None:
        configure_registry(registry)
    registry.initialize_tables(engine)

    context = AppContext(
        config=config,
        engine=engine,
        session_factory=create_session_factory(engine),
        registry=registry,
        tokens=TokenService(config),
    )
    if config.create_default_admin:
        ensure_default_admin(context)

    app = FastAPI(title="Mini CRM API", version=config.version)
    app.state.context = context
    app.state.health = HealthChecker(engine, config.version, config.environment, config.health_cache_seconds)

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[config.rate_limit],
        enabled=config.rate_limit_enabled,
    )
    app.state.limiter = limiter

    register_exception_handlers(app)
    install_middleware(app, config)

    app.include_router(build_auth_router(limiter, config), prefix=API_PREFIX)
    app.include_router(build_schema_router(), prefix=API_PREFIX)
    app.include_router(build_settings_router(), prefix=API_PREFIX)
    register_dynamic_routes(app, registry, prefix=API_PREFIX)
    app.include_router(build_health_router())

    logger.info("Mini CRM %s ready (%s, %d models)", config.version, config.environment, len(registry.get_models()))
    return app
