from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase

from localfy.config import settings

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo(uri: str | None = None, db_name: str | None = None) -> AsyncIOMotorDatabase:
    global _client, _database

    if _client is not None and _database is not None:
        return _database

    # tz_aware keeps createdAt/updatedAt comparable with datetime.now(timezone.utc).
    client = AsyncIOMotorClient(
        uri or settings.mongo_uri,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
    )
    await client.admin.command("ping")
    _client = client
    _database = client[db_name or settings.db_name]
    return _database


async def close_mongo_connection() -> None:
    global _client, _database

    if _client is not None:
        _client.close()

    _client = None
    _database = None


async def ping_mongo() -> tuple[bool, str | None]:
    if _client is None:
        return False, "MongoDB client is not initialized."

    try:
        await _client.admin.command("ping")
    except Exception as exc:
        return False, str(exc)

    return True, None


def get_database() -> AsyncIOMotorDatabase:
    if _database is None:
        raise RuntimeError("MongoDB connection has not been initialized.")
    return _database


def get_businesses_collection() -> AsyncIOMotorCollection:
    return get_database()[settings.businesses_collection]


def get_users_collection() -> AsyncIOMotorCollection:
    return get_database()[settings.users_collection]
