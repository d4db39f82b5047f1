from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from samevents.database.base import Base
from samevents.database import models  # noqa: F401  registers the tables
from samevents.config.manager import config_manager
import logging

logger = logging.getLogger(__name__)

class DatabaseManager:
    def __init__(self, database_url=None):
        if database_url is None:
            database_url = config_manager.get('app.database_url')

        self.database_url = database_url

        if database_url.startswith('sqlite'):
            # Request handlers and the test client run on different threads
            self.engine = create_engine(database_url, connect_args={'check_same_thread': False})
        else:
            self.engine = create_engine(
                database_url,
                pool_size=10,
                max_overflow=20,
                pool_timeout=30,
                pool_recycle=1800,
                pool_pre_ping=True,
            )

        # Create all tables
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created successfully")

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

    def get_session(self):
        return self.SessionLocal()

    def drop_all(self):
        Base.metadata.drop_all(bind=self.engine)

# Create a default database manager instance
db_manager = DatabaseManager()

def get_db():
    """FastAPI dependency that provides a database session"""
    db = db_manager.get_session()
    try:
        yield db
    finally:
        db.close()
