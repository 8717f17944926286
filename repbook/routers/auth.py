from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..deps import AuthDep, CacheDep, RegistryDep, StoreFactoryDep, bearer_token
from ..models import Profile
from ..services.session import UserSession

router = APIRouter()


class Credentials(BaseModel):
    email: str
    password: str


class EmailBody(BaseModel):
    email: str


class SignInResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    user_id: str
    profile: Optional[Profile] = None


class SignUpResponse(BaseModel):
    user_id: Optional[str] = None
    confirmation_required: bool


class RefreshBody(BaseModel):
    refresh_token: Optional[str] = None


class RefreshResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


@router.post("/sign-up", response_model=SignUpResponse, status_code=201)
async def sign_up(body: Credentials, auth: AuthDep) -> SignUpResponse:
    result = await auth.sign_up(body.email, body.password)
    return SignUpResponse(
        user_id=result.user.id if result.user else None,
        confirmation_required=result.session is None,
    )


@router.post("/sign-in", response_model=SignInResponse)
async def sign_in(
    body: Credentials, auth: AuthDep, registry: RegistryDep, cache: CacheDep, store_factory: StoreFactoryDep
) -> SignInResponse:
    auth_session = await auth.sign_in(body.email, body.password)
    store = store_factory(access_token=auth_session.access_token)
    session = await UserSession.start(auth_session, cache=cache, store=store)
    await registry.prune_expired()
    registry.add(session)
    return SignInResponse(
        access_token=auth_session.access_token,
        refresh_token=auth_session.refresh_token,
        user_id=session.identity.id,
        profile=session.profile,
    )


@router.post("/sign-out", status_code=204)
async def sign_out(auth: AuthDep, registry: RegistryDep, token: str = Depends(bearer_token)) -> None:
    session = registry.pop(token)
    if session is not None:
        await session.sign_out(auth)


@router.post("/reset-password", status_code=204)
async def reset_password(body: EmailBody, auth: AuthDep) -> None:
    await auth.reset_password(body.email)


@router.get("/oauth/{provider}")
async def oauth_url(provider: str, auth: AuthDep) -> dict:
    return {"url": auth.oauth_url(provider)}


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    body: RefreshBody, auth: AuthDep, registry: RegistryDep, token: str = Depends(bearer_token)
) -> RefreshResponse:
    # an expired bearer token is still accepted here
    session = registry.get(token, include_expired=True)
    if session is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    renewed = await session.refresh(auth, body.refresh_token)
    registry.rekey(token, session)
    return RefreshResponse(
        access_token=renewed.access_token,
        refresh_token=renewed.refresh_token,
        expires_in=renewed.expires_in,
    )


@router.post("/delete-account", status_code=204)
async def delete_account(auth: AuthDep, registry: RegistryDep, token: str = Depends(bearer_token)) -> None:
    session = registry.pop(token)
    if session is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    await session.delete_account(auth)
