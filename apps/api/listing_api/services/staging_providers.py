from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..settings import settings
from .provider_errors import ProviderError, classify_error, map_provider_error

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Staging service not configured"

STYLE_MAP: dict[str, str] = {
    "coastal_modern": "modern",
    "lowcountry_traditional": "traditional",
    "charleston_classic": "traditional",
    "contemporary_coastal": "contemporary",
    "minimalist": "modern",
    "contemporary": "contemporary",
    "transitional": "transitional",
    "farmhouse": "farmhouse",
    "luxury": "luxury",
}

ROOM_MAP: dict[str, str] = {
    "living_room": "living_room",
    "bedroom": "bedroom",
    "kitchen": "kitchen",
    "dining_room": "dining_room",
    "bathroom": "bathroom",
    "office": "home_office",
    "other": "living_room",
}


def map_style(style: str) -> str:
    return STYLE_MAP.get(style, "modern")


def map_room_type(room_type: str) -> str:
    return ROOM_MAP.get(room_type, "living_room")


@dataclass
class StagingRequest:
    image_url: str
    room_type: str
    style: str


@dataclass
class StagingResponse:
    success: bool
    provider: str | None = None
    job_id: str | None = None
    status: str | None = None
    result_url: str | None = None
    error: str | None = None


class BaseStagingProvider:
    name: str = "unknown"

    def __init__(self, api_key: str, base_url: str, transport: httpx.BaseTransport | None = None) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=settings.http_timeout_seconds,
            transport=self.transport,
        )

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _json(self, response: httpx.Response, label: str) -> dict[str, Any]:
        if response.status_code >= 400:
            raise map_provider_error(
                response.status_code,
                f"{label}: {response.status_code} - {response.text}",
                provider=self.name,
            )
        payload = response.json()
        if not isinstance(payload, dict):
            raise ProviderError("validation", f"{label}: unexpected response body", provider=self.name)
        return payload

    def submit(self, request: StagingRequest) -> StagingResponse:
        raise NotImplementedError

    def status(self, job_id: str) -> StagingResponse:
        raise NotImplementedError


class ReimagineProvider(BaseStagingProvider):
    name = "reimagine"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def submit(self, request: StagingRequest) -> StagingResponse:
        body = {
            "image_url": request.image_url,
            "room_type": map_room_type(request.room_type),
            "style": map_style(request.style),
            "quality": "high",
        }
        with self._client() as client:
            payload = self._json(client.post("/staging", json=body), "REimagine API error")
        return StagingResponse(
            success=True,
            provider=self.name,
            job_id=payload.get("job_id") or payload.get("id"),
            status=payload.get("status") or "processing",
        )

    def status(self, job_id: str) -> StagingResponse:
        with self._client() as client:
            response = client.get(f"/staging/{job_id}")
        if response.status_code >= 400:
            raise map_provider_error(response.status_code, f"Status check failed: {response.status_code}", provider=self.name)
        payload = response.json()
        return StagingResponse(
            success=True,
            provider=self.name,
            job_id=job_id,
            status=payload.get("status"),
            result_url=payload.get("result_url") or payload.get("output_url"),
            error=payload.get("error"),
        )


class VirtualStagingAIProvider(BaseStagingProvider):
    name = "fallback"

    def _headers(self) -> dict[str, str]:
        return {"X-API-Key": self.api_key, "Content-Type": "application/json"}

    def submit(self, request: StagingRequest) -> StagingResponse:
        body = {
            "image_url": request.image_url,
            "room": map_room_type(request.room_type),
            "style": map_style(request.style),
        }
        with self._client() as client:
            payload = self._json(client.post("/stage", json=body), "Fallback API error")
        return StagingResponse(
            success=True,
            provider=self.name,
            job_id=payload.get("job_id") or payload.get("request_id"),
            status=payload.get("status") or "processing",
        )

    def status(self, job_id: str) -> StagingResponse:
        with self._client() as client:
            response = client.get(f"/status/{job_id}")
        if response.status_code >= 400:
            raise map_provider_error(response.status_code, f"Status check failed: {response.status_code}", provider=self.name)
        payload = response.json()
        return StagingResponse(
            success=True,
            provider=self.name,
            job_id=job_id,
            status=payload.get("status"),
            result_url=payload.get("staged_image_url") or payload.get("result"),
            error=payload.get("error"),
        )


class MockStagingProvider(BaseStagingProvider):
    # Mock-first deterministic integration for local runs and CI.
    name = "mock"

    def __init__(self) -> None:
        super().__init__(api_key="mock", base_url="https://staging.mock.local")

    def submit(self, request: StagingRequest) -> StagingResponse:
        digest = hashlib.sha256(f"{request.image_url}|{request.room_type}|{request.style}".encode("utf-8")).hexdigest()
        return StagingResponse(success=True, provider=self.name, job_id=f"mock-{digest[:12]}", status="processing")

    def status(self, job_id: str) -> StagingResponse:
        return StagingResponse(
            success=True,
            provider=self.name,
            job_id=job_id,
            status="completed",
            result_url=f"{self.base_url}/staged/{job_id}.jpg",
        )


def _primary(transport: httpx.BaseTransport | None) -> BaseStagingProvider:
    return ReimagineProvider(settings.staging_api_key or "", settings.reimagine_api_url, transport=transport)


def _fallback(transport: httpx.BaseTransport | None) -> BaseStagingProvider:
    if not settings.staging_api_key_fallback:
        raise ProviderError("auth", "Fallback staging provider not configured", provider="fallback")
    return VirtualStagingAIProvider(settings.staging_api_key_fallback, settings.fallback_staging_api_url, transport=transport)


def get_provider(name: str | None, transport: httpx.BaseTransport | None = None) -> BaseStagingProvider:
    if name == "mock":
        return MockStagingProvider()
    if name in {"fallback", "virtualstagingai"}:
        return _fallback(transport)
    return _primary(transport)


def request_staging(request: StagingRequest, transport: httpx.BaseTransport | None = None) -> StagingResponse:
    """Submit to the primary vendor, swapping to the fallback once on any primary failure."""
    if settings.staging_mode != "live":
        return MockStagingProvider().submit(request)
    if not settings.staging_api_key:
        return StagingResponse(success=False, error=NOT_CONFIGURED)

    try:
        return _primary(transport).submit(request)
    except Exception as exc:
        primary_error = classify_error(exc, provider="reimagine")
        logger.warning(
            "primary staging provider failed category=%s status=%s; trying fallback",
            primary_error.category,
            primary_error.status_code,
        )

    try:
        return _fallback(transport).submit(request)
    except Exception as exc:
        fallback_error = classify_error(exc, provider="fallback")
        logger.error("fallback staging provider failed category=%s", fallback_error.category)
        return StagingResponse(success=False, provider="fallback", error=str(fallback_error))


def check_staging_status(
    job_id: str,
    provider: str | None,
    transport: httpx.BaseTransport | None = None,
) -> StagingResponse:
    if provider == "mock" or (settings.staging_mode != "live" and job_id.startswith("mock-")):
        return MockStagingProvider().status(job_id)
    if not settings.staging_api_key:
        return StagingResponse(success=False, error=NOT_CONFIGURED)
    try:
        return get_provider(provider, transport=transport).status(job_id)
    except Exception as exc:
        mapped = classify_error(exc, provider=provider)
        logger.warning("staging status check failed provider=%s job=%s: %s", provider, job_id, mapped)
        return StagingResponse(success=False, provider=provider, job_id=job_id, error=str(mapped))
