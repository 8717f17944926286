from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Callable, Optional

from fastapi import Depends, Header, HTTPException

from .services.auth import AuthClient
from .services.cache import LocalCache
from .services.session import SessionRegistry, UserSession
from .services.store_client import StoreClient


@lru_cache
def get_registry() -> SessionRegistry:
    return SessionRegistry()


@lru_cache
def get_auth_client() -> AuthClient:
    return AuthClient()


@lru_cache
def get_cache() -> LocalCache:
    return LocalCache()


def get_store_factory() -> Callable[..., StoreClient]:
    return StoreClient


def bearer_token(authorization: Annotated[Optional[str], Header()] = None) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return authorization.split(" ", 1)[1].strip()


def get_user_session(
    token: Annotated[str, Depends(bearer_token)],
    registry: Annotated[SessionRegistry, Depends(get_registry)],
) -> UserSession:
    session = registry.get(token)
    if session is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return session


RegistryDep = Annotated[SessionRegistry, Depends(get_registry)]
AuthDep = Annotated[AuthClient, Depends(get_auth_client)]
CacheDep = Annotated[LocalCache, Depends(get_cache)]
StoreFactoryDep = Annotated[Callable[..., StoreClient], Depends(get_store_factory)]
SessionDep = Annotated[UserSession, Depends(get_user_session)]
