# database.py - Async MongoDB connection manager, owned by the application lifespan

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from core.config import settings
from utils.date_helper import utcnow

logger = logging.getLogger(__name__)


@dataclass
class AsyncDatabaseConfig:
    """Connection and pool settings for the ledger database."""
    mongo_uri: str
    database_name: str
    max_pool_size: int = 100
    min_pool_size: int = 10
    server_selection_timeout_ms: int = 5000
    connect_timeout_ms: int = 5000
    socket_timeout_ms: int = 20000

    @classmethod
    def from_env(cls) -> "AsyncDatabaseConfig":
        """Build from the MONGO_* values loaded into `settings`."""
        return cls(
            mongo_uri=settings.MONGO_URI,
            database_name=settings.MONGO_DATABASE,
            max_pool_size=settings.MONGO_MAX_POOL_SIZE,
            min_pool_size=settings.MONGO_MIN_POOL_SIZE,
            server_selection_timeout_ms=settings.MONGO_SERVER_TIMEOUT_MS,
            connect_timeout_ms=settings.MONGO_CONNECT_TIMEOUT_MS,
            socket_timeout_ms=settings.MONGO_SOCKET_TIMEOUT_MS,
        )

    def validate(self) -> None:
        if not self.mongo_uri:
            raise ValueError("MongoDB URI cannot be empty")
        if not self.database_name:
            raise ValueError("Database name cannot be empty")
        if self.max_pool_size < 1:
            raise ValueError("max_pool_size must be at least 1")
        if self.max_pool_size < self.min_pool_size:
            raise ValueError("max_pool_size must be >= min_pool_size")

    @property
    def timeout_seconds(self) -> float:
        return self.server_selection_timeout_ms / 1000


class AsyncDatabaseManager:
    """
    Owns the motor client for one application.

    Created and opened by the lifespan, kept on ``app.state`` and closed on
    shutdown. Services receive ``manager.database``, never the manager class.
    """

    def __init__(self, config: AsyncDatabaseConfig):
        config.validate()
        self.config = config
        self._client: Optional[AsyncIOMotorClient] = None
        self._database: Optional[AsyncIOMotorDatabase] = None

    async def open(self) -> None:
        """Create the client and wait for the server to answer.

        Raises:
            ConnectionFailure: server unreachable or too slow to answer
        """
        if self._client is not None:
            logger.warning("Database already open")
            return

        cfg = self.config
        self._client = AsyncIOMotorClient(
            cfg.mongo_uri,
            maxPoolSize=cfg.max_pool_size,
            minPoolSize=cfg.min_pool_size,
            serverSelectionTimeoutMS=cfg.server_selection_timeout_ms,
            connectTimeoutMS=cfg.connect_timeout_ms,
            socketTimeoutMS=cfg.socket_timeout_ms,
            retryWrites=True,
            tz_aware=True,
        )
        try:
            await asyncio.wait_for(self._client.server_info(), timeout=cfg.timeout_seconds)
        except (ConnectionFailure, ServerSelectionTimeoutError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to connect to MongoDB at {cfg.database_name}: {e!r}")
            self.close()
            raise ConnectionFailure(f"Could not connect to MongoDB: {e}") from e

        self._database = self._client[cfg.database_name]
        logger.info(f"Connected to MongoDB: {cfg.database_name} (pool {cfg.min_pool_size}-{cfg.max_pool_size})")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("Database connection closed")
        self._client = None
        self._database = None

    @property
    def is_open(self) -> bool:
        return self._database is not None

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._database is None:
            raise RuntimeError("AsyncDatabaseManager not opened. Call `await open()` first.")
        return self._database

    async def health_check(self) -> Dict[str, Any]:
        report: Dict[str, Any] = {"database": self.config.database_name, "timestamp": utcnow().isoformat()}
        if self._client is None:
            return {**report, "status": "unhealthy", "error": "Database not initialized"}

        started = time.perf_counter()
        try:
            await asyncio.wait_for(self._client.admin.command("ping"), timeout=5.0)
        except asyncio.TimeoutError:
            logger.error("Database health check timeout")
            return {**report, "status": "unhealthy", "error": "Health check timeout"}
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"Database health check failed: {e}")
            return {**report, "status": "unhealthy", "error": f"Connection error: {e}"}

        return {**report, "status": "healthy", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}
