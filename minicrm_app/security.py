# security.py
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from .errors import AuthError

ALGORITHM = "HS256"
ACCESS_ISSUER = "minicrm-api"
REFRESH_ISSUER = "minicrm-api-refresh"
DEFAULT_ROUNDS = 12


def _password_bytes(password: str) -> bytes:
    # bcrypt ignores (newer releases reject) anything past 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash
        return False


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    email: str
    role: str
    expires_at: datetime


class TokenService:
    """Signs and checks access and refresh tokens. Each kind has its own key and issuer."""

    def __init__(self, config):
        self._access_key = config.jwt_secret_key
        self._refresh_key = config.jwt_refresh_secret_key
        self.access_ttl = timedelta(hours=config.jwt_expiration_hours)
        self.refresh_ttl = timedelta(days=config.refresh_expiration_days)

    @property
    def expires_in(self) -> int:
        return int(self.access_ttl.total_seconds())

    def _encode(self, user, key: str, issuer: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "user_id": user.id,
            "email": user.email,
            "role": user.role,
            "iat": now,
            "nbf": now,
            "exp": now + ttl,
            "iss": issuer,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, key, algorithm=ALGORITHM)

    def create_access_token(self, user, expires_delta: timedelta | None = None) -> str:
        return self._encode(user, self._access_key, ACCESS_ISSUER, expires_delta or self.access_ttl)

    def create_refresh_token(self, user) -> str:
        return self._encode(user, self._refresh_key, REFRESH_ISSUER, self.refresh_ttl)

    def _decode(self, token: str, key: str, issuer: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[ALGORITHM],
                issuer=issuer,
                options={"require": ["exp", "iat", "sub", "iss"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError("Token has expired") from None
        except jwt.InvalidTokenError:
            raise AuthError("Invalid token") from None

        try:
            return TokenClaims(
                user_id=int(payload["user_id"]),
                email=str(payload.get("email", "")),
                role=str(payload.get("role", "user")),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError):
            raise AuthError("Invalid token claims") from None

    def decode_access_token(self, token: str) -> TokenClaims:
        return self._decode(token, self._access_key, ACCESS_ISSUER)

    def decode_refresh_token(self, token: str) -> TokenClaims:
        return self._decode(token, self._refresh_key, REFRESH_ISSUER)
