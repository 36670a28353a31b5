from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from urllib.parse import quote_plus
from bookies.config import settings


def build_database_url() -> str:
    """Resolve the database URL from settings.

    An explicit DATABASE_URL wins. Otherwise PostgreSQL is used when a
    database name is configured, and a local SQLite file as a last resort.
    """
    if settings.database_url:
        return settings.database_url
    if settings.db_name:
        db_user = quote_plus(settings.db_user or "")
        db_password = quote_plus(settings.db_password or "")
        return f"postgresql://{db_user}:{db_password}@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    return "sqlite:///./bookies.db"


DATABASE_URL = build_database_url()

engine_kwargs = {"echo": False}
connect_args = {}

if DATABASE_URL.startswith("sqlite"):
    # Sessions are handed to FastAPI's threadpool
    connect_args["check_same_thread"] = False
else:
    engine_kwargs.update(
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=10,
        max_overflow=20,
    )
    if settings.db_ssl_mode != "disable":
        connect_args["sslmode"] = settings.db_ssl_mode
        if settings.db_ssl_cert:
            connect_args["sslcert"] = settings.db_ssl_cert
        if settings.db_ssl_key:
            connect_args["sslkey"] = settings.db_ssl_key
        if settings.db_ssl_root_cert:
            connect_args["sslrootcert"] = settings.db_ssl_root_cert

engine = create_engine(DATABASE_URL, connect_args=connect_args, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
