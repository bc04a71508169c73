from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import sys

from app.routers import conversations
from app.routers import messages
from app.routers import profiles
from app.routers import websocket
from app.core.config import settings
from app.models.base import Base
from app.database import engine, get_db_session
from app.redis.manager import redis_manager
from app.rabbit.manager import rabbit_manager
from app.rabbit.startup import start_consumers
from app.realtime.feed import change_feed
from app.realtime.relay import RedisChangeRelay
from app.services.conversation_service import ConversationService


logger = logging.getLogger(__name__)


# ======== LIFESPAN ========
@asynccontextmanager
async def lifespan(app: FastAPI):
  """
  Управление жизненным циклом приложения
  """

  # Startup
  logger.info("Запуск приложения...")

  # 1. Создаем таблицы в БД
  try:
    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
    logger.info("Таблицы БД созданы/проверены")

  except Exception as e:
    logger.error(f"Ошибка создания таблиц БД: {e}")
    raise

  # 2. Зарезервированный общий чат
  async with get_db_session() as db:
    await ConversationService.ensure_global_conversation(db)

  # 3. Подключение Redis + межпроцессная шина изменений
  relay = RedisChangeRelay(redis_manager, change_feed)
  if await redis_manager.connect():
    await relay.start()
  else:
    logger.warning(f"[connect] Redis недоступен, работаем без кэша и межпроцессного realtime")

  # 4. Подключение RabbitMQ + потребители
  try:
    await rabbit_manager.connect()
    await start_consumers()

  except Exception as e:
    logger.warning(f"[connect] Ошибка RabbitMQ (продолжаем без уведомлений): {e}")

  logger.info(f"Приложение запущено")

  yield     # Работает приложение

  # Shutdown
  await relay.stop()
  await rabbit_manager.close()
  await redis_manager.close()
  await engine.dispose()
  logger.info(f"Приложение остановлено")


# ======== APP INIT ========
app = FastAPI(
  title=settings.PROJECT_NAME,
  version="1.0.0",
  lifespan=lifespan,
)


# ======== CORS ========
app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.ALLOWED_ORIGINS,   # Список разрешенных доменов для запросов
  allow_credentials=True,                   # Разрешает куки/авторизацию
  allow_methods=["*"],                      # Все HTTP-методы
  allow_headers=["*"],                      # Все заголовки
)


# ======== ROUTERS ========
app.include_router(conversations.router)
app.include_router(messages.router)
app.include_router(profiles.router)
app.include_router(websocket.router)


# ======== HEALTH CHECK ========
@app.get("/health")
async def health_check():
  """Проверка состояния сервиса"""

  return {
    "status": "healthy",
    "service": "marketplace-messaging",
    "redis": redis_manager.is_connected,
    "rabbitmq": rabbit_manager.is_connected,
    "timestamp": datetime.now(timezone.utc).isoformat()
  }


@app.get("/")
async def root():
  return {
    "message": f"{settings.PROJECT_NAME} API",
    "docs": "/docs",
    "redoc": "/redoc",
  }


# ======== SETTINGS LOGGER ========
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
