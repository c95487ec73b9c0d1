from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, payload: Any = None) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload


class UnauthorizedError(ApiError):
    pass


def encode(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None
    if isinstance(payload, dict):
        if isinstance(payload.get("error"), dict):
            return payload["error"].get("message", response.reason_phrase), payload
        detail = payload.get("detail")
        if isinstance(detail, dict):
            return detail.get("message", response.reason_phrase), payload
        if detail:
            return str(detail), payload
    return response.reason_phrase, payload


class ApiClient:
    """Thin JSON client for the propdesk REST API.

    Any ``httpx.Client`` can be injected (the FastAPI ``TestClient`` included);
    otherwise one is created for ``base_url``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: str | None = None,
        http: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.token = token
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def request(self, method: str, path: str, params: dict[str, Any] | None = None, json: Any = None) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        response = self._http.request(
            method,
            path,
            params={k: v for k, v in (params or {}).items() if v is not None} or None,
            json=encode(json) if json is not None else None,
            headers=headers,
        )
        if response.status_code >= 400:
            message, payload = _error_message(response)
            logger.info("%s %s failed with %s: %s", method, path, response.status_code, message)
            if response.status_code == 401:
                raise UnauthorizedError(401, message, payload)
            raise ApiError(response.status_code, message, payload)
        if not response.content:
            return None
        return response.json()

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None, params: dict[str, Any] | None = None) -> Any:
        return self.request("POST", path, params=params, json=json)

    def put(self, path: str, json: Any = None, params: dict[str, Any] | None = None) -> Any:
        return self.request("PUT", path, params=params, json=json)

    def patch(self, path: str, json: Any = None, params: dict[str, Any] | None = None) -> Any:
        return self.request("PATCH", path, params=params, json=json)

    def delete(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request("DELETE", path, params=params)

    def login(self, email: str, password: str) -> dict[str, Any]:
        data = self.post("/api/auth/login", {"email": email, "password": password})
        self.token = data["token"]
        return data

    def register(self, email: str, password: str, full_name: str | None = None) -> dict[str, Any]:
        data = self.post("/api/auth/register", {"email": email, "password": password, "fullName": full_name})
        self.token = data["token"]
        return data
