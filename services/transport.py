from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Protocol

import httpx

from models.errors import NetworkFailure
from settings import get_settings


class StationTransport(Protocol):
    """Anything that can GET a URL and return its decoded JSON body."""

    def get_json(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        ...


class HttpTransport:
    """Blocking JSON GETs over a shared ``httpx.Client``."""

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.Client] = None) -> None:
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def close(self) -> None:
        self._client.close()

    def get_json(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        query: Dict[str, str] = {key: str(value) for key, value in (params or {}).items()}
        try:
            response = self._client.get(url, params=query)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkFailure(url, f"status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise NetworkFailure(url, str(exc) or type(exc).__name__) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise NetworkFailure(url, "response body is not valid JSON") from exc


@lru_cache
def build_default_transport(timeout: Optional[float] = None) -> HttpTransport:
    settings = get_settings()
    return HttpTransport(timeout=settings.http_timeout_seconds if timeout is None else timeout)
