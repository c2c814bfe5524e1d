"""
Database connection and management for Onboardflow.

This module provides:
- MongoDB connection management with async support (motor)
- Database health checking
- Connection pooling and lifecycle management
"""

import asyncio
import time
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from onboardflow.app.core.exceptions import ErrorCode, raise_database_error
from onboardflow.app.utils.logging import (
    database_logger,
    get_logger,
    performance_context
)
from onboardflow.config.settings import get_settings

logger = get_logger(__name__)


class MongoDBManager:
    """
    MongoDB connection and lifecycle management.

    Provides the async database handle shared by the entity store, with
    connection pooling and health checking.
    """

    def __init__(self):
        """Initialize MongoDB manager."""
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.is_connected: bool = False
        self._connection_lock = asyncio.Lock()

    async def connect(self) -> None:
        """
        Establish connection to MongoDB.

        Raises:
            DatabaseError: If connection fails
        """
        if self.is_connected:
            return

        async with self._connection_lock:
            if self.is_connected:
                return

            settings = get_settings()

            try:
                with performance_context("mongodb_connection"):
                    self.client = AsyncIOMotorClient(
                        settings.database.mongodb_url,
                        serverSelectionTimeoutMS=settings.database.server_selection_timeout_ms,
                        connectTimeoutMS=settings.database.server_selection_timeout_ms,
                        maxPoolSize=settings.database.max_pool_size,
                        retryWrites=True,
                        retryReads=True,
                        tz_aware=False
                    )
                    self.database = self.client[settings.database.mongodb_database]

                    await self.client.admin.command("ping")
                    self.is_connected = True

                    database_logger.connection_established(
                        database_type="mongodb",
                        database_name=settings.database.mongodb_database
                    )

            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                database_logger.connection_failed("mongodb", str(e))
                raise_database_error(
                    f"Failed to connect to MongoDB: {e}",
                    operation="connect",
                    error_code=ErrorCode.DATABASE_CONNECTION_ERROR
                )

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client is not None and self.is_connected:
            self.client.close()
            self.is_connected = False
            logger.info("MongoDB connection closed")

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform MongoDB health check.

        Returns:
            Health status information
        """
        if not self.is_connected or self.client is None:
            return {
                "status": "disconnected",
                "error": "Not connected to MongoDB"
            }

        try:
            start_time = time.time()
            await self.client.admin.command("ping")
            latency = (time.time() - start_time) * 1000

            return {
                "status": "healthy",
                "latency_ms": round(latency, 2),
            }
        except PyMongoError as e:
            return {
                "status": "unhealthy",
                "error": str(e)
            }

    def get_database(self) -> AsyncIOMotorDatabase:
        """
        Get the MongoDB database instance.

        Raises:
            DatabaseError: If not connected
        """
        if self.database is None:
            raise_database_error(
                "MongoDB not connected",
                operation="get_database",
                error_code=ErrorCode.DATABASE_CONNECTION_ERROR
            )
        return self.database


# Global database manager instance
_db_manager: Optional[MongoDBManager] = None


def get_database_manager() -> MongoDBManager:
    """Get the global database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = MongoDBManager()
    return _db_manager


async def init_databases() -> None:
    """Connect the global database manager."""
    await get_database_manager().connect()


async def close_databases() -> None:
    """Close database connections and drop the global manager."""
    global _db_manager
    if _db_manager:
        await _db_manager.disconnect()
        _db_manager = None


async def get_mongodb_database() -> AsyncIOMotorDatabase:
    """FastAPI dependency to get the MongoDB database."""
    db_manager = get_database_manager()
    if not db_manager.is_connected:
        await db_manager.connect()
    return db_manager.get_database()
