from __future__ import annotations

import http.client
import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class ResendError(RuntimeError):
    pass


class ResendRateLimited(ResendError):
    pass


@dataclass(frozen=True)
class ResendClient:
    api_key: str
    base_url: str = "https://api.resend.com"
    timeout_seconds: int = 30

    def request_json(
        self,
        path: str,
        payload: dict[str, Any],
        *,
        idempotency_key: str | None = None,
        retries: int = 2,
    ) -> dict[str, Any]:
        """
        POST JSON to Resend. Transport failures (timeouts, dropped connections) are retried and
        surface as ResendError; pass idempotency_key so a retried POST cannot send twice.
        """
        if not self.api_key:
            raise ResendError("RESEND_API_KEY is not configured.")
        url = self.base_url.rstrip("/") + path
        data = json.dumps(payload).encode("utf-8")

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            req = urllib.request.Request(url, data=data, method="POST")
            req.add_header("Authorization", f"Bearer {self.api_key}")
            req.add_header("Content-Type", "application/json")
            req.add_header("Accept", "application/json")
            if idempotency_key:
                req.add_header("Idempotency-Key", idempotency_key)
            try:
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
            except urllib.error.HTTPError as e:
                if e.code == 429:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = ResendRateLimited("Rate limited (429)")
                    continue
                body = e.read().decode("utf-8", errors="ignore")
                raise ResendError(f"HTTP {e.code} from Resend: {body[:300]}") from e
            except (OSError, http.client.HTTPException) as e:
                # URLError, TimeoutError and RemoteDisconnected all land here.
                last_err = e
                logger.warning("Resend request to %s failed (attempt %s): %r", path, attempt + 1, e)
                time.sleep(min(attempt + 1, 5))
                continue
            try:
                return json.loads(raw.decode("utf-8"))
            except ValueError as e:
                raise ResendError(f"Invalid JSON from Resend ({path})") from e
        raise ResendError(f"Resend request failed after retries: {last_err!r}")

    def send_email(
        self,
        *,
        from_address: str,
        to: list[str],
        subject: str,
        html: str,
        idempotency_key: str | None = None,
    ) -> str:
        """Send one email; returns the Resend message id."""
        j = self.request_json(
            "/emails",
            {"from": from_address, "to": to, "subject": subject, "html": html},
            idempotency_key=idempotency_key,
        )
        message_id = j.get("id") if isinstance(j, dict) else None
        if not message_id:
            raise ResendError(f"Resend response missing id: {str(j)[:200]}")
        logger.info("Resend accepted email id=%s to=%s", message_id, ",".join(to))
        return str(message_id)


def idempotency_key_for(communication_id: int, content_hash: str) -> str:
    """One key per tracked communication; Resend caps keys at 256 chars."""
    return f"comm-{communication_id}-{content_hash[:32]}"


def client_from_config(config: dict) -> ResendClient:
    return ResendClient(api_key=(config.get("RESEND_API_KEY") or "").strip())
