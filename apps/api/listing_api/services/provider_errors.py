from __future__ import annotations

import httpx


class ProviderError(Exception):
    def __init__(self, category: str, message: str, status_code: int | None = None, provider: str | None = None) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code
        self.provider = provider


def map_provider_error(status_code: int | None, message: str, provider: str | None = None) -> ProviderError:
    if status_code in {401, 403}:
        return ProviderError("auth", message, status_code=status_code, provider=provider)
    if status_code == 429:
        return ProviderError("rate_limit", message, status_code=status_code, provider=provider)
    if status_code is not None and 400 <= status_code < 500:
        return ProviderError("validation", message, status_code=status_code, provider=provider)
    if status_code is not None and status_code >= 500:
        return ProviderError("network", message, status_code=status_code, provider=provider)
    return ProviderError("unknown", message, status_code=status_code, provider=provider)


def classify_error(exc: Exception, provider: str | None = None) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ProviderError("network", f"request timed out: {exc}", provider=provider)
    if isinstance(exc, httpx.HTTPError):
        return ProviderError("network", str(exc) or exc.__class__.__name__, provider=provider)
    return ProviderError("unknown", str(exc) or "unclassified provider failure", provider=provider)
