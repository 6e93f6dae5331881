"""HTTP client for the bookmark persistence API."""
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from reading_list.core.config import Settings, get_settings
from reading_list.schemas.bookmark import Bookmark
from reading_list.services.exceptions import BackendError

REQUEST_SOURCE = "reading-list-client"


def create_http_client(settings: Settings | None = None) -> httpx.AsyncClient:
    """Build an AsyncClient pointed at the configured persistence API."""
    settings = settings or get_settings()
    return httpx.AsyncClient(base_url=settings.api_url, timeout=settings.api_timeout)


def describe_http_error(e: httpx.HTTPStatusError) -> str:
    """
    Turn an HTTP error response into a human-readable message.

    Args:
        e: The HTTP status error from httpx.

    Returns:
        Message suitable for surfacing through `OperationFailedError`.
    """
    status = e.response.status_code
    if status == 401:
        return "Invalid or expired token"
    if status == 403:
        return "Access denied"
    if status == 404:
        return "Bookmark not found"
    if status in (400, 422):
        return _extract_validation_message(e)
    return f"API error {status}"


def _extract_validation_message(e: httpx.HTTPStatusError) -> str:
    """Extract validation error message from a 400/422 response."""
    try:
        body = e.response.json()
    except ValueError:
        return "Validation error"
    if not isinstance(body, dict):
        return "Validation error"
    detail = body.get("detail", body.get("message", "Validation error"))
    if isinstance(detail, dict):
        return detail.get("message", str(detail))
    if isinstance(detail, list):
        messages = []
        for err in detail:
            if isinstance(err, dict):
                loc = err.get("loc", ["unknown"])
                field = loc[-1] if loc else "unknown"
                messages.append(f"{field}: {err.get('msg', 'invalid')}")
        return "; ".join(messages) if messages else "Validation error"
    return str(detail)


class HttpPersistenceClient:
    """
    Persistence service backed by the REST API.

    Every request carries the bearer token. Transport failures and non-2xx
    responses are raised as `BackendError`.
    """

    def __init__(self, client: httpx.AsyncClient, token: str) -> None:
        self._client = client
        self._token = token

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "X-Request-Source": REQUEST_SOURCE,
        }

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BackendError(describe_http_error(e), status_code=e.response.status_code) from e
        except httpx.TimeoutException as e:
            raise BackendError("Request timed out") from e
        except httpx.RequestError as e:
            raise BackendError(f"Request failed: {e}") from e
        return response

    async def fetch_all(self, owner: str) -> list[Bookmark]:
        response = await self._send("GET", "/bookmarks", params={"user_id": owner})
        return [_parse_record(item) for item in _items(_json(response))]

    async def create(self, fields: Mapping[str, Any]) -> Bookmark:
        response = await self._send("POST", "/bookmarks", json=_to_json(fields))
        return _parse_record(_json(response))

    async def update(self, bookmark_id: str, fields: Mapping[str, Any]) -> Bookmark:
        response = await self._send("PATCH", f"/bookmarks/{bookmark_id}", json=_to_json(fields))
        return _parse_record(_json(response))

    async def delete(self, bookmark_id: str) -> None:
        await self._send("DELETE", f"/bookmarks/{bookmark_id}")

    async def delete_many(self, bookmark_ids: Sequence[str]) -> None:
        await self._send("POST", "/bookmarks/delete-many", json={"ids": list(bookmark_ids)})


def _items(body: Any) -> list[Any]:
    """List endpoints may return a bare array or an `{"items": [...]}` envelope."""
    if isinstance(body, dict):
        return body.get("items", [])
    return body


def _to_json(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Serialize field values (datetimes, tuples) for the request body."""
    payload = {}
    for key, value in fields.items():
        # The API names the owning user `user_id`
        if key == "owner":
            key = "user_id"
        if hasattr(value, "isoformat"):
            value = value.isoformat()
        elif isinstance(value, tuple):
            value = list(value)
        payload[key] = value
    return payload


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise BackendError("Invalid response from server") from e


def _parse_record(data: Any) -> Bookmark:
    try:
        return Bookmark.model_validate(data)
    except ValueError as e:
        raise BackendError(f"Invalid bookmark in response: {e}") from e
