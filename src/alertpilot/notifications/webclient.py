"""Minimal HTTP POST helper shared by the webhook, chat and SMS channels."""
from __future__ import annotations

import json
import logging
import urllib.parse
import urllib.request
from typing import Any

from ..errors import DeliveryError

logger = logging.getLogger(__name__)


def post(
    url: str,
    *,
    json_body: Any = None,
    form: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 5.0,
) -> bytes:
    """POST to *url* and return the response body.

    Any network error or non-2xx status raises DeliveryError.
    """
    request_headers = dict(headers or {})
    if form is not None:
        data = urllib.parse.urlencode(form).encode()
        request_headers.setdefault("Content-Type", "application/x-www-form-urlencoded")
    else:
        data = json.dumps(json_body, default=str).encode()
        request_headers.setdefault("Content-Type", "application/json")

    req = urllib.request.Request(url, data=data, headers=request_headers, method="POST")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status = resp.status
            body = resp.read()
    except OSError as exc:
        raise DeliveryError(f"POST {url} failed: {exc}") from exc

    if not 200 <= status < 300:
        raise DeliveryError(f"POST {url} returned status {status}")
    logger.debug("POST %s -> %s", url, status)
    return body
