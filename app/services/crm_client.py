# app/services/crm_client.py
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from app.core.config import get_settings


class CrmClientError(RuntimeError):
    """
    Raised when a BuilderPrime API call cannot be completed: transport
    failure, non-2xx status, or a body that is not JSON.
    """


class CrmClient:
    """
    Minimal BuilderPrime REST client authenticated with a static API key.

    Responsibilities
    ----------------
    - Attach the `x-api-key` header to every request.
    - Resolve relative paths against the configured base URL.
    - Surface every failure as CrmClientError so callers can degrade
      gracefully without knowing about httpx.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://comercross.builderprime.com/api",
        timeout_seconds: float = 10.0,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")

        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    @property
    def base_url(self) -> str:
        return self._base_url

    def _build_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def get_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Issue a GET request and return the decoded JSON payload.

        Parameters
        ----------
        path:
            Either an absolute URL or a path relative to the configured base_url.
        params:
            Optional query string parameters.

        Raises CrmClientError on transport errors and non-2xx responses.
        """
        url = self._build_url(path)
        headers = {
            "x-api-key": self._api_key,
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.request(
                    method="GET",
                    url=url,
                    headers=headers,
                    params=params,
                )
        except httpx.HTTPError as exc:
            raise CrmClientError(f"BuilderPrime GET {url} failed: {exc}") from exc

        if resp.status_code // 100 != 2:
            raise CrmClientError(
                f"BuilderPrime GET failed (status={resp.status_code}): {resp.text}"
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise CrmClientError(
                f"BuilderPrime GET returned a non-JSON body (status={resp.status_code})"
            ) from exc


_crm_client_instance: Optional[CrmClient] = None


def get_crm_client() -> CrmClient:
    """
    Lazily construct the shared CrmClient from application settings.
    """
    global _crm_client_instance
    if _crm_client_instance is None:
        settings = get_settings()
        if not settings.BUILDERPRIME_API_KEY:
            raise CrmClientError(
                "BUILDERPRIME_API_KEY must be configured to query BuilderPrime."
            )
        _crm_client_instance = CrmClient(
            api_key=settings.BUILDERPRIME_API_KEY,
            base_url=settings.BUILDERPRIME_API_URL,
            timeout_seconds=settings.HTTP_TIMEOUT_SECONDS,
        )
    return _crm_client_instance
