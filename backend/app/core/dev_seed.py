import logging
import os

from sqlalchemy.orm import Session

from backend.app.core.security import get_password_hash
from backend.app.core.settings import get_settings
from backend.app.models.user import ROLE_ADMIN, User

logger = logging.getLogger(__name__)


def ensure_default_dev_admin(db: Session) -> None:
    """
    Create a default admin user for local development if it does not exist.
    Skips execution when running under pytest to avoid altering test expectations.
    """
    if os.getenv("PYTEST_CURRENT_TEST"):
        return

    settings = get_settings()
    if settings.environment != "development":
        return

    existing = db.query(User).filter(User.email == settings.dev_admin_email).first()
    if existing:
        return

    db.add(
        User(
            email=settings.dev_admin_email,
            full_name="Platform Admin",
            hashed_password=get_password_hash(settings.dev_admin_password),
            role=ROLE_ADMIN,
            is_active=True,
        )
    )
    db.commit()
    logger.info("Seeded development admin %s", settings.dev_admin_email)
