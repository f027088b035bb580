#/backend/nutrigen/models/database.py
from sqlalchemy import create_engine, Column, Integer, String, JSON, DateTime
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from contextlib import contextmanager
from datetime import datetime
from typing import Optional
from nutrigen.core.config import settings

Base = declarative_base()

# Create engine
connect_args = {"check_same_thread": False} if settings.is_sqlite else {}
engine = create_engine(settings.database_url, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(db: Optional[Session] = None):
    """Reuse `db` when given, otherwise open and close a fresh session"""
    if db is not None:
        yield db
        return
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class ReferenceFoodRow(Base):
    """Stored food used as plausibility context for generation"""
    __tablename__ = "reference_foods"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, index=True)
    min_age_months = Column(Integer, nullable=True)
    nutrients = Column(JSON, default=dict)  # {"vitaminC": {"value": 127.7, "unit": "mg"}, ...}
    created_at = Column(DateTime, default=datetime.utcnow)


class Diet(Base):
    """Allowed diet vocabulary, e.g. "Vegan", "Keto" """
    __tablename__ = "diets"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, index=True)


def init_db():
    Base.metadata.create_all(bind=engine)
