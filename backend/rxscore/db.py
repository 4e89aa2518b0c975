# backend/rxscore/db.py
import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Integer, String, create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()

engine = None
SessionLocal: Optional[sessionmaker] = None


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class DiagnosticHistory(Base):
    __tablename__ = "diagnostics"

    id = Column(Integer, primary_key=True, index=True)
    patient_name = Column(String, index=True)
    patient_age = Column(Integer)
    medications = Column(String)
    conditions = Column(JSON)  # list of condition labels
    risk_score = Column(Integer)
    risk_level = Column(String)
    medication = Column(String)
    source = Column(String)
    result = Column(JSON)  # full DiagnosticResult as returned to the client
    created_at = Column(DateTime, default=_utcnow)


def configure(database_url: Optional[str]):
    """Bind the module to a database, or disable history when no URL is given."""
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
    if not database_url:
        engine, SessionLocal = None, None
        return
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, connect_args=connect_args)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)


def is_enabled() -> bool:
    return SessionLocal is not None


def ping():
    """Raise if the database cannot be reached."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
