from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from .config import settings

# check_same_thread=False: the webhook and the browser-return handlers run
# on different worker threads. timeout bounds how long a writer waits for
# the database lock before the call fails as a storage error.
if settings.is_sqlite:
    engine = create_engine(
        settings.resolved_database_url,
        connect_args={
            "check_same_thread": False,
            "timeout": settings.storage_timeout_seconds,
        },
    )

    # Foreign keys are off by default in SQLite
    @event.listens_for(engine, "connect")
    def enable_sqlite_fk(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    engine = create_engine(
        settings.resolved_database_url,
        pool_pre_ping=True,
        pool_timeout=settings.storage_timeout_seconds,
    )

# SessionLocal is the only way services talk to the database
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
