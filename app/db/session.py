from sqlmodel import create_engine, Session
from app.core.config import settings

# SQLite (local runs, tests) refuses cross-thread connections by default
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, connect_args=connect_args)

def get_db():
    """
    Request-scoped session dependency.
    Opens a session for one request and closes it afterwards.
    """
    with Session(engine) as session:
        yield session
