"""Async HTTP client for the ``/api/users`` endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from .errors import BadRequest, StoreUnavailable
from .models import ListingRequest, ListingResult, UserRecord

logger = logging.getLogger("stagecontrol.client")

USERS_PATH = "/api/users"


def _normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("API base URL must not be empty")
    return cleaned.rstrip("/")


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def listing_params(request: ListingRequest) -> Dict[str, str]:
    """Encode a listing request as ``GET /api/users`` query parameters."""

    params = {
        "page": str(request.page_index + 1),
        "limit": str(request.page_size),
        "sort": request.sort_key,
        "direction": request.sort_direction.value,
    }
    text = request.search_text.strip()
    if text:
        params[request.search_field] = text
    return params


class UsersClient:
    """Talk to the user admin API.

    HTTP 4xx responses raise ``BadRequest``; 5xx responses and transport
    failures raise ``StoreUnavailable``. The message is taken from the
    ``error`` field of the response body when present.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=_normalize_base_url(base_url),
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "UsersClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def list_users(self, request: ListingRequest) -> ListingResult:
        payload = await self._request("GET", USERS_PATH, params=listing_params(request))
        users = payload.get("users") or []
        return ListingResult(
            records=tuple(UserRecord.from_dict(item) for item in users),
            total_match_count=int(payload.get("total") or 0),
        )

    async def create_user(self, fields: Mapping[str, str]) -> UserRecord:
        payload = await self._request("POST", USERS_PATH, json=dict(fields))
        return UserRecord.from_dict(payload)

    async def update_user(self, user_id: str, fields: Mapping[str, str]) -> str:
        payload = await self._request("PUT", USERS_PATH, json={"_id": user_id, **fields})
        return str(payload.get("message", ""))

    async def delete_user(self, user_id: str) -> str:
        payload = await self._request("DELETE", USERS_PATH, json={"id": user_id})
        return str(payload.get("message", ""))

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise StoreUnavailable(f"Failed to contact user service: {exc}") from exc

        try:
            parsed = response.json()
        except ValueError:
            parsed = response.text

        if response.status_code >= 500:
            raise StoreUnavailable(
                _extract_error_message(parsed, f"User service failed with status {response.status_code}")
            )
        if response.status_code >= 400:
            raise BadRequest(
                _extract_error_message(parsed, f"User service rejected the request ({response.status_code})")
            )
        if not isinstance(parsed, dict):
            raise StoreUnavailable("User service returned an unexpected response format")
        logger.debug("%s %s -> %s", method, path, response.status_code)
        return parsed


__all__ = ["USERS_PATH", "UsersClient", "listing_params"]
