import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from supabase import create_client, Client

load_dotenv()

# Relational store (records + attachments)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./onegate.db")


def make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
Base = declarative_base()

# Supabase Storage (raw image/audio objects)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_BUCKET = os.getenv("SUPABASE_BUCKET", "attachments")
supabase: Client | None = (
    create_client(SUPABASE_URL, SUPABASE_KEY) if SUPABASE_URL and SUPABASE_KEY else None
)


def init_db(bind=None) -> None:
    """Create the record tables if they do not exist yet."""
    import models.records  # noqa: F401  registers the tables on Base.metadata

    Base.metadata.create_all(bind=bind or engine)
