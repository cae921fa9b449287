"""
MongoDB access for the Mobile Sebaa API.

The client is created once per process by ``connect`` and handed to the
application through ``app.state``.  Route handlers receive the database
through the ``get_db`` dependency, which keeps them testable with
``app.dependency_overrides``.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, status
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError
from pymongo.server_api import ServerApi

from config import Settings

logger = logging.getLogger(__name__)

USERS = "users"
SHOPS = "shops"

# Field that must be unique per collection; enforced by the handlers and,
# when the index can be built, by the server as well.
UNIQUE_KEYS = {USERS: "email", SHOPS: "mobile"}


def create_client(settings: Settings) -> Optional[AsyncMongoClient]:
    try:
        return AsyncMongoClient(
            settings.database_uri,
            server_api=ServerApi("1", strict=True, deprecation_errors=True),
        )
    except PyMongoError as exc:
        logger.error("Could not create MongoDB client: %s", exc)
        return None


async def ensure_indexes(db) -> None:
    for collection, field in UNIQUE_KEYS.items():
        try:
            await db[collection].create_index(
                field,
                unique=True,
                partialFilterExpression={field: {"$type": "string"}},
            )
        except PyMongoError as exc:
            logger.warning("Unique index on %s.%s not created: %s", collection, field, exc)


async def connect(settings: Settings):
    """Create the client and check connectivity.

    Returns ``(client, db)``.  Connection problems are only logged; the
    caller keeps serving HTTP regardless.  ``db`` is ``None`` only when
    the client itself could not be built (for example a malformed URI).
    """
    client = create_client(settings)
    if client is None:
        return None, None

    db = client[settings.db_name]
    try:
        await client.admin.command("ping")
        logger.info("Pinged MongoDB deployment, database %r is reachable", settings.db_name)
        await ensure_indexes(db)
    except PyMongoError as exc:
        logger.error("MongoDB ping failed: %s", exc)
    return client, db


async def disconnect(client) -> None:
    if client is not None:
        await client.close()
        logger.info("MongoDB client closed")


def get_db(request: Request):
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
    return db
