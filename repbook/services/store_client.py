from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import TypeAdapter

from ..errors import NO_IDENTITY_CODE, TRANSPORT_CODE, StoreError
from ..logs import log
from ..models import (
    Exercise,
    Identity,
    Profile,
    SetWithExercise,
    Workout,
    WorkoutSet,
    WorkoutWithSets,
)
from ..settings import get_settings


SINGLE_OBJECT = "application/vnd.pgrst.object+json"
SET_WITH_EXERCISE_SELECT = "*,exercise:exercises(name)"
WORKOUT_WITH_SETS_SELECT = "*,sets(*,exercise:exercises(name))"

Params = Sequence[Tuple[str, Any]]


def api_headers(api_key: Optional[str], access_token: Optional[str]) -> Dict[str, str]:
    headers: Dict[str, str] = {"Accept": "application/json"}
    if api_key:
        headers["apikey"] = api_key
    bearer = access_token or api_key
    if bearer:
        headers["Authorization"] = f"Bearer {bearer}"
    return headers


def error_from_response(resp: httpx.Response, error_cls: type = StoreError) -> StoreError:
    try:
        payload = resp.json()
    except ValueError:
        payload = {"message": resp.text or resp.reason_phrase}
    if not isinstance(payload, dict):
        payload = {"message": str(payload)}
    return error_cls.from_payload(resp.status_code, payload)


class StoreClient:
    """Typed access to the remote ``profiles``/``exercises``/``workouts``/``sets`` tables.

    Every row access is scoped to the identity behind ``access_token``. All
    failures surface as :class:`StoreError`; single-row getters turn the
    not-found sentinel into ``None``.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self._identity: Optional[Identity] = None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=api_headers(api_key or settings.supabase_anon_key, access_token),
            timeout=settings.request_timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def set_access_token(self, access_token: str) -> None:
        self._client.headers["Authorization"] = f"Bearer {access_token}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Params] = None,
        json: Any = None,
        single: bool = False,
        returning: bool = False,
    ) -> Any:
        headers: Dict[str, str] = {}
        if single:
            headers["Accept"] = SINGLE_OBJECT
        if returning:
            headers["Prefer"] = "return=representation"
        try:
            resp = await self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise StoreError(TRANSPORT_CODE, str(e) or type(e).__name__) from e
        if resp.status_code >= 400:
            raise error_from_response(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def _get_single(self, table: str, params: Params) -> Optional[Dict[str, Any]]:
        try:
            return await self._request("GET", f"/rest/v1/{table}", params=params, single=True)
        except StoreError as e:
            if e.is_not_found:
                return None
            raise

    # Identity

    async def get_current_identity(self) -> Optional[Identity]:
        if self._identity is not None:
            return self._identity
        try:
            data = await self._request("GET", "/auth/v1/user")
        except StoreError as e:
            if e.status in (401, 403):
                return None
            raise
        if not data:
            return None
        self._identity = Identity(id=str(data["id"]), email=data.get("email"))
        return self._identity

    async def _user_id(self) -> str:
        identity = await self.get_current_identity()
        if identity is None:
            raise StoreError(NO_IDENTITY_CODE, "No authenticated user", status=401)
        return identity.id

    # Profiles

    async def get_profile(self) -> Optional[Profile]:
        user_id = await self._user_id()
        data = await self._get_single("profiles", [("select", "*"), ("id", f"eq.{user_id}")])
        return Profile.model_validate(data) if data else None

    async def create_profile(self, fields: Dict[str, Any]) -> Profile:
        data = await self._request("POST", "/rest/v1/profiles", json=fields, single=True, returning=True)
        return Profile.model_validate(data)

    async def update_profile(self, profile_id: str, fields: Dict[str, Any]) -> Profile:
        data = await self._request(
            "PATCH", "/rest/v1/profiles", params=[("id", f"eq.{profile_id}")], json=fields, single=True, returning=True
        )
        return Profile.model_validate(data)

    # Exercises

    async def list_active_exercises(self) -> List[Exercise]:
        user_id = await self._user_id()
        data = await self._request(
            "GET",
            "/rest/v1/exercises",
            params=[
                ("select", "*"),
                ("user_id", f"eq.{user_id}"),
                ("is_archived", "eq.false"),
                ("order", "name.asc"),
            ],
        )
        return TypeAdapter(List[Exercise]).validate_python(data or [])

    async def create_exercise(self, fields: Dict[str, Any]) -> Exercise:
        user_id = await self._user_id()
        body = {**fields, "user_id": user_id}
        data = await self._request("POST", "/rest/v1/exercises", json=body, single=True, returning=True)
        return Exercise.model_validate(data)

    async def archive_exercise(self, exercise_id: str) -> None:
        await self._request(
            "PATCH", "/rest/v1/exercises", params=[("id", f"eq.{exercise_id}")], json={"is_archived": True}
        )

    # Workouts

    async def get_workout(self, day: date) -> Optional[Workout]:
        user_id = await self._user_id()
        data = await self._get_single(
            "workouts", [("select", "*"), ("user_id", f"eq.{user_id}"), ("date", f"eq.{day.isoformat()}")]
        )
        return Workout.model_validate(data) if data else None

    async def create_workout(self, day: date, note: Optional[str] = None) -> Workout:
        user_id = await self._user_id()
        body = {"user_id": user_id, "date": day.isoformat(), "note": note}
        data = await self._request("POST", "/rest/v1/workouts", json=body, single=True, returning=True)
        return Workout.model_validate(data)

    async def list_workouts(self, start: date, end: date) -> List[Workout]:
        user_id = await self._user_id()
        data = await self._request(
            "GET",
            "/rest/v1/workouts",
            params=[
                ("select", "*"),
                ("user_id", f"eq.{user_id}"),
                ("date", f"gte.{start.isoformat()}"),
                ("date", f"lte.{end.isoformat()}"),
                ("order", "date.desc"),
            ],
        )
        return TypeAdapter(List[Workout]).validate_python(data or [])

    # Sets

    async def list_sets(self, workout_id: str) -> List[SetWithExercise]:
        data = await self._request(
            "GET",
            "/rest/v1/sets",
            params=[
                ("select", SET_WITH_EXERCISE_SELECT),
                ("workout_id", f"eq.{workout_id}"),
                ("order", "order_index.asc"),
            ],
        )
        sets = TypeAdapter(List[SetWithExercise]).validate_python(data or [])
        return sorted(sets, key=lambda s: s.order_index)

    async def create_set(self, fields: Dict[str, Any]) -> WorkoutSet:
        data = await self._request("POST", "/rest/v1/sets", json=fields, single=True, returning=True)
        return WorkoutSet.model_validate(data)

    async def update_set(self, set_id: str, fields: Dict[str, Any]) -> WorkoutSet:
        data = await self._request(
            "PATCH", "/rest/v1/sets", params=[("id", f"eq.{set_id}")], json=fields, single=True, returning=True
        )
        return WorkoutSet.model_validate(data)

    async def delete_set(self, set_id: str) -> None:
        await self._request("DELETE", "/rest/v1/sets", params=[("id", f"eq.{set_id}")])

    # Export

    async def list_all_workouts_with_sets(self) -> List[WorkoutWithSets]:
        user_id = await self._user_id()
        data = await self._request(
            "GET",
            "/rest/v1/workouts",
            params=[
                ("select", WORKOUT_WITH_SETS_SELECT),
                ("user_id", f"eq.{user_id}"),
                ("order", "date.desc"),
                ("sets.order", "order_index.asc"),
            ],
        )
        workouts = TypeAdapter(List[WorkoutWithSets]).validate_python(data or [])
        for w in workouts:
            w.sets.sort(key=lambda s: s.order_index)
        log("store", f"export fetched {len(workouts)} workouts")
        return workouts
