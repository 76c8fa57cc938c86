# auth.py
import logging
from dataclasses import dataclass

from fastapi import APIRouter, Body, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from .crud import GenericCRUD
from .database import get_db, transaction
from .errors import AuthError, AuthorizationError, ConflictError, NotFoundError
from .models import Settings, User
from .responses import success
from .schemas import LoginRequest, ProfileUpdate, RefreshRequest, RegisterRequest
from .security import hash_password, verify_password

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    user_id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _actor_from_token(request: Request, token: str) -> Actor:
    claims = request.app.state.context.tokens.decode_access_token(token)
    actor = Actor(user_id=claims.user_id, email=claims.email, role=claims.role)
    request.state.actor = actor
    return actor


def get_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    if credentials is None:
        raise AuthError("Authorization header with a Bearer token is required")
    return _actor_from_token(request, credentials.credentials)


def get_optional_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor | None:
    if credentials is None:
        return None
    return _actor_from_token(request, credentials.credentials)


def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise AuthorizationError("Admin access required")
    return actor


def _token_response(request: Request, user: User) -> dict:
    tokens = request.app.state.context.tokens
    return success({
        "token": tokens.create_access_token(user),
        "refresh_token": tokens.create_refresh_token(user),
        "token_type": "Bearer",
        "expires_in": tokens.expires_in,
        "user": user.as_dict(),
    })


def _live_user(db: Session, user_id: int) -> User | None:
    return (
        db.query(User)
        .options(selectinload(User.settings))
        .filter(User.id == user_id, User.deleted_at.is_(None))
        .first()
    )


def build_auth_router(limiter, config) -> APIRouter:
    """Auth endpoints. Register, login and refresh share the stricter auth rate limit."""
    router = APIRouter(prefix="/auth", tags=["auth"])
    auth_limit = limiter.limit(config.auth_rate_limit)

    def register(request: Request, body: RegisterRequest, db: Session = Depends(get_db)):
        existing = (
            db.query(User)
            .filter(or_(User.email == body.email, User.username == body.username))
            .first()
        )
        if existing:
            raise ConflictError("Email or username already in use")

        user = User(
            username=body.username,
            email=body.email,
            password_hash=hash_password(body.password, config.bcrypt_rounds),
            role="user",
        )
        with transaction(db):
            db.add(user)
            db.flush()
            db.add(Settings(user_id=user.id))

        logger.info("Registered user id=%s", user.id)
        return _token_response(request, user)

    def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)):
        user = db.query(User).filter(User.email == body.email, User.deleted_at.is_(None)).first()
        if not user or not verify_password(body.password, user.password_hash):
            raise AuthError("Invalid email or password")
        return _token_response(request, user)

    def refresh(request: Request, body: RefreshRequest, db: Session = Depends(get_db)):
        claims = request.app.state.context.tokens.decode_refresh_token(body.refresh_token)
        user = _live_user(db, claims.user_id)
        if user is None:
            raise AuthError("User no longer exists")
        return _token_response(request, user)

    def me(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
        user = _live_user(db, actor.user_id)
        if user is None:
            raise NotFoundError("User not found")
        return success(user.as_dict(include=("settings",)))

    def update_me(
        request: Request,
        payload: dict = Body(...),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db),
    ):
        # goes through the User policy, so a new password is re-hashed
        crud = GenericCRUD(request.app.state.context.registry.get_model("User"))
        user = crud.update(db, actor, actor.user_id, payload, schema=ProfileUpdate)
        logger.info("User id=%s updated own profile", user.id)
        return success(crud.serialize(user))

    def logout(actor: Actor = Depends(get_actor)):
        # tokens are stateless; the client drops them
        return success({"message": "Logged out, discard your tokens"})

    router.add_api_route("/register", auth_limit(register), methods=["POST"], status_code=201)
    router.add_api_route("/login", auth_limit(login), methods=["POST"])
    router.add_api_route("/refresh", auth_limit(refresh), methods=["POST"])
    router.add_api_route("/me", me, methods=["GET"])
    router.add_api_route("/me", update_me, methods=["PUT"])
    router.add_api_route("/logout", logout, methods=["POST"])
    return router
