from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
import structlog

logger = structlog.get_logger()

class Base(DeclarativeBase):
    pass

# Initialize these as None, will be set up conditionally
engine = None
AsyncSessionLocal = None

def build_session_factory(bind) -> async_sessionmaker:
    """Session factory shared by the API, the Celery tasks and the tests"""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

def setup_database():
    """Setup database based on environment"""
    global engine, AsyncSessionLocal

    from prestasync.config.settings import get_settings
    settings = get_settings()

    database_url = settings.DATABASE_URL

    # Handle SQLite for simple mode
    if database_url.startswith("sqlite:"):
        database_url = database_url.replace("sqlite:///", "sqlite+aiosqlite:///")
        engine = create_async_engine(database_url, echo=settings.DEBUG)
    elif "postgresql" in database_url:
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+asyncpg://")
        engine = create_async_engine(
            database_url,
            echo=settings.DEBUG,
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
            connect_args={
                "server_settings": {
                    "application_name": "prestasync_dashboard",
                }
            }
        )
    else:
        engine = create_async_engine(
            database_url,
            echo=settings.DEBUG,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    AsyncSessionLocal = build_session_factory(engine)

async def create_tables():
    """Create database tables"""
    if engine is None:
        setup_database()

    # Register the models on Base.metadata
    import prestasync.models.database  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

def get_session_factory() -> async_sessionmaker:
    if AsyncSessionLocal is None:
        setup_database()
    return AsyncSessionLocal

async def get_db():
    """Dependency to get database session"""
    session_factory = get_session_factory()

    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
