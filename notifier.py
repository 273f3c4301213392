from __future__ import annotations

import json
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from config import get_settings


class DispatchFailure(RuntimeError):
    pass


class BarkNotifier:
    """Push sender for Bark-compatible endpoints (JSON POST of title and body)."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout if timeout is not None else get_settings().push_timeout_secs

    def send(self, url: str, title: str, body: str) -> None:
        if not url or not url.strip():
            raise DispatchFailure("Push URL is empty")

        payload = json.dumps({"title": title, "body": body}).encode("utf-8")
        try:
            req = Request(
                url.strip(),
                data=payload,
                method="POST",
                headers={"Content-Type": "application/json; charset=utf-8"},
            )
            with urlopen(req, timeout=self.timeout) as resp:
                status = resp.status
        except HTTPError as exc:
            raise DispatchFailure(f"Push endpoint returned status {exc.code}") from exc
        except (URLError, TimeoutError, ValueError) as exc:
            raise DispatchFailure(f"Failed to send push notification: {exc}") from exc

        if status < 200 or status >= 300:
            raise DispatchFailure(f"Push endpoint returned status {status}")
