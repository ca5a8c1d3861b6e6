from fastapi import HTTPException, Request, status

from localfy.services.auth import AuthSession
from localfy.services.business_store import BusinessStore


def get_store(request: Request) -> BusinessStore:
    store = getattr(request.app.state, "store", None)
    if store is None or store.disposed:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Business store is not running.")
    return store


def get_auth(request: Request) -> AuthSession:
    auth = getattr(request.app.state, "auth", None)
    if auth is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Auth session is not configured.")
    return auth
