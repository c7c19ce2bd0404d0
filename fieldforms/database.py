from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from fieldforms.config import settings


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite connections are not pooled and wait SQLITE_BUSY_TIMEOUT seconds
    for a competing writer, so concurrent cycle updates queue instead of
    failing with "database is locked".
    """
    if "sqlite" in database_url:
        return create_async_engine(
            database_url,
            echo=False,
            poolclass=NullPool,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.SQLITE_BUSY_TIMEOUT,
            },
        )

    # PostgreSQL with connection pooling (async engines use AsyncAdaptedQueuePool)
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """Session factory shared by the app, scripts and tests."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL)

# Create async session factory
AsyncSessionLocal = build_session_factory(engine)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncSession:
    """
    Dependency for getting database session.
    Usage in FastAPI:
        @app.get("/")
        async def endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def dialect_insert(session: AsyncSession, model):
    """
    INSERT construct of the session's dialect, for ON CONFLICT clauses.

    Usage:
        stmt = dialect_insert(db, CycleLog).values(...).on_conflict_do_nothing(...)
    """
    if session.get_bind().dialect.name == "postgresql":
        return postgresql_insert(model)
    return sqlite_insert(model)


async def init_db() -> None:
    """Initialize database (create tables)."""
    # Register every model on the metadata before create_all
    import fieldforms.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
