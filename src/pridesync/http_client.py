from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError, ReadTimeout


@dataclass
class HTTPClient:
    user_agent: str = "pridesync-simulator/0.1"
    timeout_s: int = 10
    tries: int = 3
    backoff_s: float = 0.5

    def __post_init__(self) -> None:
        self.s = requests.Session()
        self.s.headers.update(
            {
                "User-Agent": self.user_agent,
                "Accept": "application/json",
            }
        )

    def post_json(
        self, url: str, payload: Dict[str, Any], timeout_s: Optional[int] = None
    ) -> requests.Response:
        """POST *payload*; retries only on timeouts and connection errors.

        HTTP error statuses are returned to the caller, not raised.
        """
        timeout = timeout_s if timeout_s is not None else self.timeout_s
        last_err: Optional[Exception] = None
        for attempt in range(self.tries):
            try:
                return self.s.post(url, json=payload, timeout=timeout)
            except (ReadTimeout, ConnectionError) as e:
                last_err = e
                time.sleep(self.backoff_s * (2**attempt))
        raise last_err if last_err else RuntimeError("HTTP post_json failed")
