import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# Importing config loads .env before DATABASE_URL is read
from checkout import config  # noqa: F401

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError(
        "DATABASE_URL is not set; it must point at the store holding "
        "pricing_entries, payment_statuses and payment_transactions "
        "(see .env.example)."
    )

# SQLite connections are shared with FastAPI's threadpool workers
engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

# One short-lived session per store operation
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()
