from datetime import datetime, timedelta, timezone
from typing import Any

from localfy.models.business import BusinessPage, PageCursor, RawBusinessDocument
from localfy.services.business_repository import BusinessFetchError, BusinessWriteError
from localfy.services.business_store import BusinessStore
from localfy.services.local_cache import BusinessCacheStore, MemoryKeyValueStorage

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def make_document(index: int, category: str = "food", **overrides: Any) -> RawBusinessDocument:
    data: dict[str, Any] = {
        "name": f"Business {index}",
        "description": f"Description {index}",
        "category": category,
        "rating": 4.0,
        "createdAt": BASE_TIME - timedelta(minutes=index),
        "updatedAt": BASE_TIME - timedelta(minutes=index),
        "createdBy": "owner-1",
    }
    data.update(overrides)
    return RawBusinessDocument(id=f"biz-{index:03d}", data=data)


def _created_at(doc: RawBusinessDocument) -> datetime:
    # Documents without createdAt sort last, as they do in MongoDB.
    value = doc.data.get("createdAt")
    return value if isinstance(value, datetime) else EPOCH


class FakeRepository:
    def __init__(self, documents: list[RawBusinessDocument] | None = None) -> None:
        self.documents = sorted(
            documents or [],
            key=lambda doc: (_created_at(doc), doc.id),
            reverse=True,
        )
        self.fetch_calls: list[dict[str, Any]] = []
        self.get_calls: list[str] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.fail_fetch = False
        self.fail_update = False
        self.user_favorites: dict[str, list[str]] = {}
        self.favorite_writes: list[tuple[str, list[str]]] = []
        self.subscribe_calls: list[str] = []
        self.unsubscribe_calls: list[str] = []
        self.handlers: dict[str, tuple[Any, Any]] = {}

    async def fetch_page(
        self,
        *,
        category: str | None = None,
        cursor: PageCursor | None = None,
        page_size: int = 20,
    ) -> BusinessPage:
        self.fetch_calls.append({"category": category, "cursor": cursor, "page_size": page_size})
        if self.fail_fetch:
            raise BusinessFetchError("Failed to load businesses.")

        docs = [doc for doc in self.documents if not category or doc.data.get("category") == category]
        if cursor is not None:
            anchor = (cursor.created_at, cursor.document_id)
            docs = [doc for doc in docs if (_created_at(doc), doc.id) < anchor]
        page = docs[:page_size]
        next_cursor = (
            PageCursor(created_at=_created_at(page[-1]), document_id=page[-1].id) if page else None
        )
        return BusinessPage(documents=page, cursor=next_cursor, has_more=len(page) == page_size)

    async def fetch_owned(self, owner_id: str, *, limit: int = 100) -> list[RawBusinessDocument]:
        return [doc for doc in self.documents if doc.data.get("createdBy") == owner_id][:limit]

    async def get_document(self, business_id: str) -> RawBusinessDocument | None:
        self.get_calls.append(business_id)
        for doc in self.documents:
            if doc.id == business_id:
                return doc
        return None

    async def update_document(self, business_id: str, fields: dict[str, Any]) -> None:
        self.updates.append((business_id, fields))
        if self.fail_update:
            raise BusinessWriteError(f"Failed to update business '{business_id}'.")

    def watch_document(self, business_id: str, on_change, on_error):
        self.subscribe_calls.append(business_id)
        self.handlers[business_id] = (on_change, on_error)

        def unsubscribe() -> None:
            self.unsubscribe_calls.append(business_id)
            self.handlers.pop(business_id, None)

        return unsubscribe

    async def get_user_favorites(self, user_id: str) -> list[str]:
        if user_id not in self.user_favorites:
            raise LookupError(f"User '{user_id}' not found.")
        return list(self.user_favorites[user_id])

    async def set_user_favorites(self, user_id: str, favorites: list[str]) -> None:
        self.favorite_writes.append((user_id, list(favorites)))
        self.user_favorites[user_id] = list(favorites)


def build_store(
    repository: FakeRepository,
    storage: MemoryKeyValueStorage | None = None,
    **kwargs: Any,
) -> BusinessStore:
    kv = storage if storage is not None else MemoryKeyValueStorage()
    return BusinessStore(
        repository,
        BusinessCacheStore(kv, validity_seconds=300),
        kv,
        favorites_persist_delay=0,
        **kwargs,
    )
