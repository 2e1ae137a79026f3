"""Initialize database tables and create initial data if needed"""
import logging
from bookstream.db.base import Base
from bookstream.db.session import engine, SessionLocal
from bookstream.models import User, UserRole
from bookstream.services.auth_service import get_password_hash
from bookstream.core.config import settings

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables"""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {str(e)}")
        raise


def create_initial_data() -> None:
    """Create initial super admin from .env configuration"""
    db = SessionLocal()
    try:
        user_count = db.query(User).count()

        if user_count == 0:
            super_user = User(
                email=settings.SUPER_ADMIN_EMAIL,
                first_name="Super",
                last_name="Admin",
                hashed_password=get_password_hash(settings.SUPER_ADMIN_PASSWORD),
                role=UserRole.SUPER_USER,
                is_active=True,
            )
            db.add(super_user)
            db.commit()
            logger.info(f"Super admin created: {settings.SUPER_ADMIN_EMAIL}")
            logger.warning("Change default credentials in .env file!")

    except Exception as e:
        logger.error(f"Error creating initial data: {str(e)}")
        db.rollback()
    finally:
        db.close()
