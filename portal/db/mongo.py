# portal/db/mongo.py
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from portal.core.config import settings

logger = logging.getLogger(__name__)

_mongo_client: Optional[AsyncIOMotorClient] = None
# set by tests (or scripts) to run against another database object
_database_override = None

# (collection, keys, options)
INDEXES = [
    ("users", [("email", 1)], {"unique": True}),
    ("companies", [("email", 1)], {"unique": True}),
    ("candidates", [("tenant_id", 1), ("email", 1)], {"unique": True}),
    ("questions", [("tenant_id", 1), ("visibility", 1), ("is_active", 1)], {}),
    ("questions", [("domain", 1)], {}),
    ("tests", [("tenant_id", 1), ("status", 1)], {}),
    ("tests", [("created_at", -1)], {}),
    ("test_attempts", [("test_id", 1), ("principal_id", 1)], {}),
    # at most one open attempt per principal and test
    ("test_attempts", [("test_id", 1), ("principal_id", 1), ("status", 1)],
     {"unique": True, "partialFilterExpression": {"status": "in_progress"}}),
    ("billing", [("tenant_id", 1), ("status", 1)], {}),
    ("billing", [("invoice_number", 1)], {"unique": True}),
    ("scheduled_jobs", [("status", 1), ("scheduled_at", 1)], {}),
    ("invitations", [("token_hash", 1)], {"unique": True}),
    ("system_settings", [("key", 1)], {"unique": True}),
    ("audit_logs", [("created_at", -1)], {}),
]


def get_mongo_client() -> AsyncIOMotorClient:
    """
    Returns a cached Motor client.
    """
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = AsyncIOMotorClient(settings.MONGODB_URI)
    return _mongo_client


def get_db() -> AsyncIOMotorDatabase:
    if _database_override is not None:
        return _database_override
    return get_mongo_client()[settings.MONGODB_DB]


def use_database(db) -> None:
    """Point every repository at `db` (None restores the configured database)."""
    global _database_override
    _database_override = db


async def init_db() -> None:
    db = get_db()
    for collection, keys, options in INDEXES:
        try:
            await db[collection].create_index(keys, **options)
        except Exception as exc:
            # index creation is not fatal; the app can still serve reads
            logger.warning("Could not create index %s on %s: %s", keys, collection, exc)


def close_db() -> None:
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None
