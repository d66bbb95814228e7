from contextlib import contextmanager
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator, Iterator
import redis
from .config import settings


_database_url = settings.get_database_url

if _database_url.startswith("sqlite"):
    engine = create_engine(
        _database_url,
        connect_args={"check_same_thread": False},
    )
else:
    # PostgreSQL with appropriate connection pool settings
    engine = create_engine(
        _database_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Redis setup - mock for testing
if settings.TESTING:
    # Use a simple dict-based mock for Redis in tests
    class RedisMock:
        def __init__(self):
            self.data = {}

        def setex(self, key, time, value):
            self.data[key] = str(value)
            return True

        def get(self, key):
            return self.data.get(key)

        def delete(self, key):
            if key in self.data:
                del self.data[key]
            return 1

        def incr(self, key):
            self.data[key] = str(int(self.data.get(key, "0")) + 1)
            return int(self.data[key])

    redis_client = RedisMock()
else:
    # Real Redis client for production
    redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

# Database dependency
def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Redis dependency
def get_redis():
    """Get Redis client."""
    return redis_client

@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a unit of work atomically.

    Reads and writes inside the block go through ``db``. The block commits on
    normal exit; any exception rolls everything back and propagates, so no
    partial write survives a failed transition.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise

# Database initialization
def init_db():
    """Initialize database tables."""
    # Import models so they register with Base.metadata
    from ..models import appointment, identity, patient  # noqa: F401
    Base.metadata.create_all(bind=engine)

def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
