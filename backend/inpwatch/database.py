"""Database connection and session management."""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool
from inpwatch.config import settings

Base = declarative_base()


def build_engine(database_url: str, environment: str = "development") -> Engine:
    """Create an engine suited to the target database."""
    echo = environment == "development"

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )

    # Pooler connections (pgbouncer/supavisor) manage pooling themselves
    if "pooler." in database_url or database_url.endswith(":6543"):
        return create_engine(database_url, poolclass=NullPool, echo=echo)

    return create_engine(
        database_url,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        echo=echo,
    )


engine = build_engine(settings.database_url, settings.environment)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> None:
    """Create tables (in production, use migrations)."""
    # Register models on Base.metadata
    import inpwatch.models  # noqa: F401

    Base.metadata.create_all(bind=bind)


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
