from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any

import requests

from ideaeval.core.utils import stable_hash

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class SimpleHttpClient:
    def __init__(
        self,
        timeout_seconds: int = 20,
        max_retries: int = 3,
        cache_ttl_seconds: int = 300,
        cache_dir: str = ".cache/ideaeval_http",
        backoff_seconds: float = 1.0,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(1, max_retries)
        self.cache_ttl_seconds = cache_ttl_seconds
        self.backoff_seconds = backoff_seconds
        self.cache_path = Path(cache_dir)
        self.cache_path.mkdir(parents=True, exist_ok=True)

    def _cache_file(self, method: str, url: str, body: Any) -> Path:
        cache_key = stable_hash(method + "|" + url + "|" + json.dumps(body or {}, sort_keys=True))
        return self.cache_path / f"{cache_key}.json"

    def _cached(self, cache_file: Path) -> Any | None:
        if self.cache_ttl_seconds <= 0 or not cache_file.exists():
            return None
        age_seconds = time.time() - cache_file.stat().st_mtime
        if age_seconds > self.cache_ttl_seconds:
            return None
        return json.loads(cache_file.read_text(encoding="utf-8"))

    def _request(self, method: str, url: str, cache_file: Path, **kwargs: Any) -> Any:
        cached = self._cached(cache_file)
        if cached is not None:
            return cached

        delay = self.backoff_seconds
        last_error: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                response = requests.request(method, url, timeout=self.timeout_seconds, **kwargs)
                if response.status_code in RETRYABLE_STATUS:
                    raise requests.HTTPError(
                        f"retryable status={response.status_code}", response=response
                    )
                response.raise_for_status()
                payload = response.json()
                if self.cache_ttl_seconds > 0:
                    cache_file.write_text(json.dumps(payload), encoding="utf-8")
                return payload
            except requests.RequestException as exc:
                last_error = exc
                if attempt + 1 < self.max_retries:
                    time.sleep(delay)
                    delay *= 2
        if last_error is None:
            raise RuntimeError("Unexpected HTTP client failure with no exception.")
        raise last_error

    def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any] | list[Any]:
        cache_file = self._cache_file("GET", url, params)
        return self._request("GET", url, cache_file, params=params, headers=headers)

    def post_json(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any] | list[Any]:
        cache_file = self._cache_file("POST", url, body)
        return self._request("POST", url, cache_file, json=body, headers=headers)
