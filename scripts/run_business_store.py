import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from localfy.database import close_mongo_connection, connect_to_mongo, get_businesses_collection, get_users_collection
from localfy.main import build_store, configure_logging
from localfy.services.auth import AuthSession
from localfy.services.business_repository import BusinessRepository


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Load the business list through the local cache without API server.")
    parser.add_argument("--force", action="store_true", help="Skip the local cache and fetch the first page again.")
    parser.add_argument("--pages", type=int, default=0, help="Extra pages to load after the first one.")
    parser.add_argument("--category", default=None, help="Category applied to the view and to extra pages.")
    parser.add_argument("--user", default=None, help="Signed-in user whose favorites are synced.")
    parser.add_argument("--compact", action="store_true", help="Print compact JSON output (single line).")
    return parser.parse_args()


async def _run() -> None:
    args = _parse_args()
    configure_logging()

    await connect_to_mongo()
    auth = AuthSession(args.user)
    store = build_store(BusinessRepository(get_businesses_collection(), get_users_collection()), auth)
    try:
        await store.init()
        if args.force:
            await store.refresh(force=True)
        store.set_selected_category(args.category)
        for _ in range(max(0, args.pages)):
            if not store.has_more:
                break
            await store.load_more()

        result: dict[str, Any] = {
            "status": store.status.value,
            "error": store.error,
            "loaded": len(store.businesses),
            "has_more": store.has_more,
            "categories": store.categories,
            "favorites": store.favorites,
            "items": [
                {"id": item.id, "name": item.name, "category": item.category, "rating": item.rating}
                for item in store.filtered_businesses
            ],
        }
    finally:
        await store.dispose()
        await close_mongo_connection()

    if args.compact:
        print(json.dumps(result, ensure_ascii=False))
    else:
        print(json.dumps(result, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    asyncio.run(_run())
