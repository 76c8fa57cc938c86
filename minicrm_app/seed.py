# seed.py
import logging

from .database import transaction
from .models import Settings, User
from .security import hash_password

logger = logging.getLogger(__name__)


def ensure_default_admin(context) -> User | None:
    """Create the configured admin account when the users table is empty."""
    config = context.config
    db = context.session_factory()
    try:
        if db.query(User).count():
            return None
        admin = User(
            username=config.admin_username,
            email=config.admin_email,
            password_hash=hash_password(config.admin_password, config.bcrypt_rounds),
            role="admin",
        )
        with transaction(db):
            db.add(admin)
            db.flush()
            db.add(Settings(user_id=admin.id))
        logger.warning("Created default admin %r, change its password", config.admin_username)
        return admin
    finally:
        db.close()
