"""
MongoDB access for the HomeHero API.

One AsyncMongoClient is opened at startup by ``connect_db`` and shared by every
request handler through the ``get_db`` dependency. ``close_db`` releases it on
shutdown.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote_plus

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.results import InsertOneResult

from config import Settings

logger = logging.getLogger(__name__)

USERS = "users"
SERVICES = "services"
BOOKINGS = "bookings"

client: Optional[AsyncMongoClient] = None
db: Optional[AsyncDatabase] = None


def build_mongo_uri(settings: Settings) -> str:
    if settings.database_url:
        return settings.database_url
    user = quote_plus(settings.db_user)
    password = quote_plus(settings.db_pass)
    return (
        f"mongodb+srv://{user}:{password}@{settings.db_cluster}/"
        f"{settings.database_name}?retryWrites=true&w=majority"
    )


async def connect_db(settings: Settings) -> AsyncDatabase:
    """Open the shared client and verify the server answers a ping.

    Raises whatever the driver raises when the server is unreachable; the
    caller is expected to abort startup.
    """
    global client, db
    mongo_client = AsyncMongoClient(build_mongo_uri(settings), tz_aware=True)
    try:
        await mongo_client.admin.command("ping")
    except Exception:
        await mongo_client.close()
        raise
    client = mongo_client
    db = mongo_client[settings.database_name]
    logger.info("MongoDB connected (database=%s)", settings.database_name)
    return db


async def close_db() -> None:
    global client, db
    if client is not None:
        await client.close()
        logger.info("MongoDB connection closed")
    client = None
    db = None


def get_db() -> AsyncDatabase:
    """FastAPI dependency returning the shared database handle."""
    if db is None:
        raise RuntimeError("Database is not connected; connect_db() must run before serving")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def create_document(database: AsyncDatabase, collection_name: str, data: Dict[str, Any]) -> InsertOneResult:
    """Insert a copy of ``data``; the caller's dict never gains an ``_id``.

    Server-set fields such as ``created_at`` come from the models in schemas.py.
    """
    return await database[collection_name].insert_one(dict(data))


async def get_documents(
    database: AsyncDatabase,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    limit: int = 0,
) -> List[Dict[str, Any]]:
    """Return matching documents as a list. ``limit=0`` means no limit."""
    kwargs: Dict[str, Any] = {}
    if sort:
        kwargs["sort"] = list(sort)
    if limit:
        kwargs["limit"] = limit
    cursor = database[collection_name].find(filter_dict or {}, **kwargs)
    return await cursor.to_list(None)
