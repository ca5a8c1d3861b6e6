from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from localfy.models.business import BusinessPage, PageCursor, RawBusinessDocument

LOGGER = logging.getLogger(__name__)

ChangeHandler = Callable[[str, dict[str, Any]], None]
ErrorHandler = Callable[[str, BaseException], None]
Unsubscribe = Callable[[], None]


class BusinessFetchError(RuntimeError):
    pass


class BusinessWriteError(RuntimeError):
    pass


class BusinessRepository:
    DEFAULT_PAGE_SIZE = 20
    _SORT = [("createdAt", -1), ("_id", -1)]
    _WATCHED_OPERATIONS = ["insert", "update", "replace"]

    def __init__(self, businesses, users=None) -> None:
        self._businesses = businesses
        self._users = users

    async def fetch_page(
        self,
        *,
        category: str | None = None,
        cursor: PageCursor | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> BusinessPage:
        page_size_value = max(1, int(page_size))
        query = self._build_page_query(category=category, cursor=cursor)
        try:
            docs = (
                await self._businesses.find(query)
                .sort(self._SORT)
                .limit(page_size_value)
                .to_list(length=page_size_value)
            )
        except PyMongoError as exc:
            raise BusinessFetchError("Failed to load businesses.") from exc

        documents = [self._to_raw_document(doc) for doc in docs]
        next_cursor = self._cursor_after(docs[-1]) if docs else None
        return BusinessPage(
            documents=documents,
            cursor=next_cursor,
            has_more=len(documents) == page_size_value,
        )

    async def fetch_owned(self, owner_id: str, *, limit: int = 100) -> list[RawBusinessDocument]:
        try:
            docs = (
                await self._businesses.find({"createdBy": owner_id})
                .sort(self._SORT)
                .limit(limit)
                .to_list(length=limit)
            )
        except PyMongoError as exc:
            raise BusinessFetchError(f"Failed to load businesses owned by '{owner_id}'.") from exc
        return [self._to_raw_document(doc) for doc in docs]

    async def get_document(self, business_id: str) -> RawBusinessDocument | None:
        try:
            doc = await self._businesses.find_one({"_id": document_key(business_id)})
        except PyMongoError as exc:
            raise BusinessFetchError(f"Failed to load business '{business_id}'.") from exc
        if doc is None:
            return None
        return self._to_raw_document(doc)

    async def update_document(self, business_id: str, fields: dict[str, Any]) -> None:
        update: dict[str, Any] = {"$currentDate": {"updatedAt": True}}
        changes = {key: value for key, value in fields.items() if key not in {"_id", "id", "updatedAt"}}
        if changes:
            update["$set"] = changes
        try:
            result = await self._businesses.update_one({"_id": document_key(business_id)}, update)
        except PyMongoError as exc:
            raise BusinessWriteError(f"Failed to update business '{business_id}'.") from exc
        if result.matched_count == 0:
            raise LookupError(f"Business '{business_id}' not found.")

    def watch_document(
        self,
        business_id: str,
        on_change: ChangeHandler,
        on_error: ErrorHandler,
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(
            self._watch(business_id, on_change, on_error),
            name=f"watch-business-{business_id}",
        )

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def get_user_favorites(self, user_id: str) -> list[str]:
        users = self._require_users()
        try:
            doc = await users.find_one({"_id": document_key(user_id)}, projection={"favorites": 1})
        except PyMongoError as exc:
            raise BusinessFetchError(f"Failed to load favorites for user '{user_id}'.") from exc
        if doc is None:
            raise LookupError(f"User '{user_id}' not found.")
        favorites = doc.get("favorites")
        if not isinstance(favorites, list):
            return []
        return [str(item) for item in favorites if isinstance(item, str) and item]

    async def set_user_favorites(self, user_id: str, favorites: list[str]) -> None:
        users = self._require_users()
        try:
            result = await users.update_one(
                {"_id": document_key(user_id)},
                {"$set": {"favorites": list(favorites)}, "$currentDate": {"updatedAt": True}},
            )
        except PyMongoError as exc:
            raise BusinessWriteError(f"Failed to save favorites for user '{user_id}'.") from exc
        if result.matched_count == 0:
            raise LookupError(f"User '{user_id}' not found.")

    async def _watch(self, business_id: str, on_change: ChangeHandler, on_error: ErrorHandler) -> None:
        key = document_key(business_id)
        pipeline = [
            {
                "$match": {
                    "documentKey._id": key,
                    "operationType": {"$in": self._WATCHED_OPERATIONS},
                }
            }
        ]
        try:
            # Deliver the current state first, the way a snapshot listener does.
            current = await self._businesses.find_one({"_id": key})
            if current is not None:
                on_change(business_id, self._to_raw_document(current).data)

            async with self._businesses.watch(pipeline, full_document="updateLookup") as stream:
                async for change in stream:
                    document = change.get("fullDocument")
                    if document is None:
                        continue
                    on_change(business_id, self._to_raw_document(document).data)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            on_error(business_id, exc)

    def _require_users(self):
        if self._users is None:
            raise RuntimeError("Users collection is not configured.")
        return self._users

    def _build_page_query(self, *, category: str | None, cursor: PageCursor | None) -> dict[str, Any]:
        clauses: list[dict[str, Any]] = []
        if category:
            clauses.append({"category": category})
        if cursor is not None:
            clauses.append(cursor_filter(cursor))
        if not clauses:
            return {}
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    def _cursor_after(self, doc: dict[str, Any]) -> PageCursor:
        created_at = doc.get("createdAt")
        if not isinstance(created_at, datetime):
            # Documents without createdAt sort last; anchor the cursor at the epoch.
            created_at = datetime.fromtimestamp(0, tz=timezone.utc)
        return PageCursor(created_at=created_at, document_id=str(doc["_id"]))

    def _to_raw_document(self, doc: dict[str, Any]) -> RawBusinessDocument:
        data = dict(doc)
        raw_id = data.pop("_id")
        return RawBusinessDocument(id=str(raw_id), data=data)


def document_key(value: str) -> ObjectId | str:
    # Documents created by the mobile clients use string keys; seeded ones use ObjectId.
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return str(value)


def cursor_filter(cursor: PageCursor) -> dict[str, Any]:
    key = document_key(cursor.document_id)
    return {
        "$or": [
            {"createdAt": {"$lt": cursor.created_at}},
            {"createdAt": cursor.created_at, "_id": {"$lt": key}},
        ]
    }
