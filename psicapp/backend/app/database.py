from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

REPO_ROOT = Path(__file__).resolve().parents[3]
load_dotenv(REPO_ROOT / ".env")

logger = logging.getLogger("psicapp.database")


def resolve_db_path() -> str:
    db_env = (os.getenv("PSICAPP_DB_PATH") or os.getenv("DB_PATH") or "").strip()
    db_path = Path(db_env) if db_env else (REPO_ROOT / "psicapp.db")
    if not db_path.is_absolute():
        db_path = REPO_ROOT / db_path
    return str(db_path)


DB_PATH = resolve_db_path()
DATABASE_URL = f"sqlite:///{DB_PATH}"

engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_profile_columns(bind: Engine = engine) -> None:
    """Add profile columns introduced after the first release to older databases."""
    with bind.connect() as connection:
        columns = {row[1] for row in connection.execute(text("PRAGMA table_info(profiles)"))}
        if not columns:
            return
        if "role" not in columns:
            connection.execute(text("ALTER TABLE profiles ADD COLUMN role TEXT DEFAULT 'user' NOT NULL"))
            logger.info("Added profiles.role column")
        if "push_token" not in columns:
            connection.execute(text("ALTER TABLE profiles ADD COLUMN push_token TEXT"))
            logger.info("Added profiles.push_token column")
        if "avatar_url" not in columns:
            connection.execute(text("ALTER TABLE profiles ADD COLUMN avatar_url TEXT"))
            logger.info("Added profiles.avatar_url column")
        connection.commit()


def ensure_schedule_columns(bind: Engine = engine) -> None:
    with bind.connect() as connection:
        columns = {row[1] for row in connection.execute(text("PRAGMA table_info(schedule_items)"))}
        if not columns:
            return
        if "item_type" not in columns:
            connection.execute(text("ALTER TABLE schedule_items ADD COLUMN item_type TEXT DEFAULT 'class' NOT NULL"))
        if "include_wellness" not in columns:
            connection.execute(text("ALTER TABLE schedule_items ADD COLUMN include_wellness BOOLEAN DEFAULT 0"))
        if "notes" not in columns:
            connection.execute(text("ALTER TABLE schedule_items ADD COLUMN notes TEXT"))
        connection.commit()
