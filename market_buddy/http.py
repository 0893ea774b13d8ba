from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests


@dataclass(frozen=True)
class HttpClient:
    base_url: str
    headers: dict[str, str] = field(default_factory=dict)
    timeout_s: float = 30.0

    def url(self, path: str) -> str:
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")

    def get(self, path: str, *, params: dict | None = None) -> requests.Response:
        return requests.get(
            self.url(path),
            params=params,
            headers={"Accept": "application/json", **self.headers},
            timeout=self.timeout_s,
        )

    def post_json(self, path: str, body: Any, *, params: dict | None = None) -> requests.Response:
        return requests.post(
            self.url(path),
            params=params,
            json=body,
            headers={"Accept": "application/json", **self.headers},
            timeout=self.timeout_s,
        )
