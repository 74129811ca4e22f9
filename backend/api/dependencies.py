"""
Dependency injection for the API service.
Provides storage, the scores cache and the broadcast hub to route handlers.
"""
from __future__ import annotations

from typing import Optional

from shared.storage import ScoreStorage
from shared.utils.database import DatabaseManager
from shared.utils.redis_manager import RedisManager

from api.ws.hub import BroadcastHub
from ingest.cache import ScoresCache

# Module-level singletons, initialized at startup
_redis: RedisManager | None = None
_db: DatabaseManager | None = None
_storage: ScoreStorage | None = None
_cache: ScoresCache | None = None
_hub: BroadcastHub | None = None


def init_dependencies(
    storage: ScoreStorage,
    cache: ScoresCache,
    hub: BroadcastHub,
    redis: Optional[RedisManager] = None,
    db: Optional[DatabaseManager] = None,
) -> None:
    """Initialize module-level singletons. Called once at startup (or by tests)."""
    global _redis, _db, _storage, _cache, _hub
    _storage = storage
    _cache = cache
    _hub = hub
    _redis = redis
    _db = db


def get_redis() -> Optional[RedisManager]:
    return _redis


def get_db() -> Optional[DatabaseManager]:
    return _db


def get_storage() -> ScoreStorage:
    """FastAPI dependency: returns the shared storage collaborator."""
    if _storage is None:
        raise RuntimeError("Storage not initialized, call init_dependencies first")
    return _storage


def get_cache() -> ScoresCache:
    """FastAPI dependency: returns the shared ScoresCache."""
    if _cache is None:
        raise RuntimeError("ScoresCache not initialized, call init_dependencies first")
    return _cache


def get_hub() -> Optional[BroadcastHub]:
    return _hub
