from fastapi import Header, HTTPException

from . import config
from .database import SessionLocal, engine
from .services.locks import PostgresAdvisoryLock
from .services.store import SqlPoolStore

# One lock object per process so a held key is visible to later requests.
_matcher_lock = PostgresAdvisoryLock(engine)


def validate_admin_token(token: str | None, admin_token: str | None) -> None:
    if not admin_token or not token or token != admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def require_admin_token(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    validate_admin_token(x_admin_token, config.ADMIN_TOKEN)


def get_pool_store() -> SqlPoolStore:
    return SqlPoolStore(SessionLocal)


def get_matcher_lock() -> PostgresAdvisoryLock:
    return _matcher_lock
