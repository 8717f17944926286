from __future__ import annotations

import time
from datetime import date
from typing import Any, Callable, Dict, Optional

from ..errors import NO_IDENTITY_CODE, AuthError, StoreError, ValidationError
from ..logs import log, log_failure
from ..models import Identity, Profile
from .auth import AuthClient, AuthSession
from .cache import LocalCache
from .store_client import StoreClient
from .sync import DataSync


def default_display_name(identity: Identity) -> str:
    if identity.email and identity.email.split("@")[0]:
        return identity.email.split("@")[0]
    return "User"


def expiry_of(auth: AuthSession, now: Optional[float] = None) -> Optional[float]:
    if not auth.expires_in:
        return None
    return (now if now is not None else time.time()) + auth.expires_in


async def load_profile(store: StoreClient, identity: Identity) -> Profile:
    """Return the identity's profile, creating it on first login."""
    profile = await store.get_profile()
    if profile is not None:
        return profile
    log("session", f"no profile for {identity.id}, creating one")
    return await store.create_profile({"id": identity.id, "display_name": default_display_name(identity)})


class UserSession:
    """Everything owned on behalf of one signed-in user.

    Built by :meth:`start` after a successful sign-in and discarded by
    :meth:`sign_out`. ``expires_at`` follows the access token and moves
    forward on :meth:`refresh`.
    """

    def __init__(self, auth: AuthSession, store: StoreClient, data: DataSync, profile: Optional[Profile]) -> None:
        self.auth = auth
        self.store = store
        self.data = data
        self.profile = profile
        self.expires_at = expiry_of(auth)

    @property
    def identity(self) -> Identity:
        return self.auth.user

    def expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at

    @classmethod
    async def start(
        cls,
        auth: AuthSession,
        cache: Optional[LocalCache] = None,
        store: Optional[StoreClient] = None,
        today: Callable[[], date] = date.today,
    ) -> "UserSession":
        store = store or StoreClient(access_token=auth.access_token)
        try:
            identity = await store.get_current_identity()
            if identity is None:
                raise StoreError(NO_IDENTITY_CODE, "No authenticated user", status=401)
            profile: Optional[Profile] = None
            try:
                profile = await load_profile(store, identity)
            except StoreError as e:
                log_failure("session", e)
        except BaseException:
            await store.close()
            raise
        data = DataSync(store, cache or LocalCache(), identity.id, today=today)
        session = cls(auth, store, data, profile)
        await data.initialize()
        log("session", f"started for {identity.email or identity.id}")
        return session

    async def update_profile(self, fields: Dict[str, Any]) -> Profile:
        fields = {k: v for k, v in fields.items() if v is not None}
        if not fields:
            raise ValidationError("profile", "nothing to update")
        self.profile = await self.store.update_profile(self.identity.id, fields)
        return self.profile

    async def refresh(self, auth_client: AuthClient, refresh_token: Optional[str] = None) -> AuthSession:
        token = refresh_token or self.auth.refresh_token
        if not token:
            raise AuthError("no_refresh_token", "Session has no refresh token", status=400)
        renewed = await auth_client.refresh(token)
        if renewed.user.id != self.identity.id:
            raise AuthError("identity_mismatch", "Refreshed session belongs to another user", status=403)
        self.store.set_access_token(renewed.access_token)
        self.auth = renewed
        self.expires_at = expiry_of(renewed)
        log("session", f"refreshed for {self.identity.email or self.identity.id}")
        return renewed

    async def close(self) -> None:
        self.data.close()
        await self.store.close()

    async def sign_out(self, auth_client: AuthClient) -> None:
        self.data.close()
        try:
            await auth_client.sign_out(self.auth.access_token)
        finally:
            await self.store.close()

    async def delete_account(self, auth_client: AuthClient) -> None:
        # Account removal needs a privileged server-side call; signing out is
        # all a client can do.
        await self.sign_out(auth_client)


class SessionRegistry:
    """Live sessions keyed by access token.

    Lookups skip sessions whose token has expired; :meth:`prune_expired`
    closes them. A session is re-keyed with :meth:`rekey` after a refresh.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, UserSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: UserSession) -> None:
        self._sessions[session.auth.access_token] = session

    def get(self, access_token: str, include_expired: bool = False) -> Optional[UserSession]:
        session = self._sessions.get(access_token)
        if session is None or (session.expired() and not include_expired):
            return None
        return session

    def pop(self, access_token: str) -> Optional[UserSession]:
        return self._sessions.pop(access_token, None)

    def rekey(self, old_token: str, session: UserSession) -> None:
        if self._sessions.get(old_token) is session:
            del self._sessions[old_token]
        self.add(session)

    async def prune_expired(self, now: Optional[float] = None) -> int:
        stale = [token for token, s in self._sessions.items() if s.expired(now)]
        for token in stale:
            await self._sessions.pop(token).close()
        if stale:
            log("session", f"closed {len(stale)} expired sessions")
        return len(stale)

    async def close_all(self) -> None:
        for session in list(self._sessions.values()):
            await session.close()
        self._sessions.clear()
