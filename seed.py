"""
Database seed script: default venue plus an admin and a staff account.
"""
import os
import sys

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.auth import get_password_hash
from app.config import settings
from app.database import Base, SessionLocal, engine
from app.models import User, UserRole
from app.services.venues import ensure_venue

ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@local")
ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "Admin@123")
STAFF_EMAIL = os.getenv("SEED_STAFF_EMAIL", "staff@local")
STAFF_PASSWORD = os.getenv("SEED_STAFF_PASSWORD", "Staff@123")


def _ensure_user(db: Session, email: str, password: str, name: str, role: UserRole) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        print(f"✅ User {email} already exists")
        return user
    user = User(email=email, name=name, password_hash=get_password_hash(password), role=role)
    db.add(user)
    print(f"✅ Created {role.value.lower()} user: {email}")
    return user


def seed_database(db: Session) -> None:
    """Idempotently create the default venue and the two login accounts"""
    try:
        venue = ensure_venue(db, settings.DEFAULT_VENUE_NAME)
        print(f"✅ Venue ready: {venue.name}")

        _ensure_user(db, ADMIN_EMAIL, ADMIN_PASSWORD, "Admin User", UserRole.ADMIN)
        staff = _ensure_user(db, STAFF_EMAIL, STAFF_PASSWORD, "Staff User", UserRole.USER)
        if venue not in staff.venues:
            staff.venues.append(venue)

        db.commit()
    except SQLAlchemyError as e:
        print(f"❌ Seeding failed: {e}")
        db.rollback()
        raise

    print("\n🎉 Seeding completed!")
    print("\n📝 Login credentials:")
    print(f"   Admin: {ADMIN_EMAIL} / {ADMIN_PASSWORD}")
    print(f"   Staff: {STAFF_EMAIL} / {STAFF_PASSWORD}")


if __name__ == "__main__":
    print("🌱 Starting database seeding...")
    try:
        print("🔌 Testing database connection...")
        with engine.connect():
            print("✅ Database connection successful!")
        Base.metadata.create_all(bind=engine)
        print("✅ Tables ready!")
    except SQLAlchemyError as e:
        print(f"❌ Database setup failed: {e}")
        print("💡 Check DATABASE_URL in your .env file")
        sys.exit(1)

    session = SessionLocal()
    try:
        seed_database(session)
    finally:
        session.close()
