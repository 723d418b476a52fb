from __future__ import annotations


class ProviderError(RuntimeError):
    def __init__(self, provider: str, message: str, *, status: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status = status


class ProviderRateLimited(ProviderError):
    def __init__(self, provider: str, retry_after_ms: int | None = None) -> None:
        super().__init__(provider, "rate limited", status=429)
        self.retry_after_ms = retry_after_ms
