import os

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from shared.config import settings  # noqa: F401  loads .env first

DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost") # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5433")
DB_NAME = os.getenv("POSTGRES_DB", "qrpay")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# Every service owns one schema
SCHEMAS = ("merchant_schema", "order_schema")

Base = declarative_base()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    SQLite has no schemas, so table schemas are translated away there.
    Used for local runs and the test-suite (aiosqlite).
    """
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=echo,
            execution_options={"schema_translate_map": {name: None for name in SCHEMAS}},
        )
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, expire_on_commit=False)


async def init_models(bind: AsyncEngine) -> None:
    """Create schemas (where supported) and all registered tables."""
    async with bind.begin() as conn:
        if conn.dialect.name == "postgresql":
            for name in SCHEMAS:
                await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {name}"))
        await conn.run_sync(Base.metadata.create_all)


engine = build_engine(DATABASE_URL, echo=DB_ECHO)

AsyncSessionLocal = build_session_factory(engine)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
