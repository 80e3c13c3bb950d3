"""Seed the administrator user from env vars."""

from sqlalchemy.orm import Session

from tukin.core.config import Settings
from tukin.models.user import User
from tukin.core.security import hash_password


def seed_admin(db: Session, settings: Settings) -> None:
    """Create the administrator user if not already present."""
    existing = db.query(User).filter(User.email == settings.ADMIN_EMAIL).first()
    if existing:
        print(f"ℹ️  Administrator '{settings.ADMIN_EMAIL}' already exists, skipping.")
        return

    admin = User(
        email=settings.ADMIN_EMAIL,
        password_hash=hash_password(settings.ADMIN_PASSWORD),
        role=1,
        is_active=True,
    )
    db.add(admin)
    db.commit()
    print(f"✅ Created administrator: {settings.ADMIN_EMAIL}")
