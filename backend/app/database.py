from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from app.core.config import settings


engine_options = {
  "pool_pre_ping": True,
  "echo": settings.DEBUG,       # Вывод SQL-запросов в консоль
}

# У SQLite нет полноценного пула соединений
if not settings.DATABASE_URL.startswith("sqlite"):
  engine_options.update(pool_size=10, max_overflow=20)

# Создаем async engine
engine = create_async_engine(settings.DATABASE_URL, **engine_options)

# Session для async
AsyncSessionLocal = async_sessionmaker(
  bind=engine,
  class_=AsyncSession,
  expire_on_commit=False,
  autoflush=False,
)


# Контекстный менеджер для зависимостей
async def get_db() -> AsyncIterator[AsyncSession]:
  async with AsyncSessionLocal() as session:
    try:
      yield session
    finally:
      await session.close()


@asynccontextmanager
async def get_db_session() -> AsyncIterator[AsyncSession]:
  """Сессия вне FastAPI (consumers, realtime-контроллеры)"""

  async with AsyncSessionLocal() as session:
    yield session
