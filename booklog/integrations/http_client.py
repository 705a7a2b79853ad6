from __future__ import annotations

import json
import logging
import random
import threading
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

USER_AGENT = "booklog/1.0"


def _safe_body_preview(resp: requests.Response, limit: int = 800) -> str:
    try:
        text = resp.text or ""
    except Exception:
        return "<unavailable>"
    text = text.replace("\r", " ").replace("\n", " ").strip()
    if len(text) > limit:
        return text[:limit].rstrip() + "..."
    return text


class CatalogServiceError(RuntimeError):
    pass


class CatalogRateLimitError(CatalogServiceError):
    pass


class CatalogNotFoundError(CatalogServiceError):
    pass


class TokenBucket:
    def __init__(self, rate_per_sec: float, burst: int) -> None:
        self.rate = max(0.01, float(rate_per_sec))
        self.capacity = max(1, int(burst))
        self.tokens = float(self.capacity)
        self.lock = threading.Lock()
        self.last = time.monotonic()

    def take(self, n: float = 1.0) -> None:
        while True:
            with self.lock:
                now = time.monotonic()
                elapsed = now - self.last
                self.last = now
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
                if self.tokens >= n:
                    self.tokens -= n
                    return
                need = (n - self.tokens) / self.rate
            time.sleep(min(0.25, max(0.01, need)))


def make_session() -> requests.Session:
    s = requests.Session()
    s.headers.update({
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    })
    return s


def _sleep_jitter(base: float, jitter: float = 0.25) -> None:
    time.sleep(max(0.0, base + random.random() * jitter))


def graphql_post(
    session: requests.Session,
    url: str,
    *,
    query: str,
    variables: Dict[str, Any],
    timeout_s: int,
    retries: int,
    limiter: Optional[TokenBucket] = None,
) -> Dict[str, Any]:
    """
    POST a GraphQL query and return its `data` object.

      - exponential backoff + jitter for 429/5xx/network errors
      - Retry-After honoured when the server sends it
      - GraphQL `errors` are not retried
    """
    backoff = 1.0
    for attempt in range(1, retries + 2):
        if limiter is not None:
            limiter.take(1.0)
        try:
            logger.debug(
                "request | method=POST | url=%s | variables=%s | attempt=%s/%s",
                url,
                variables,
                attempt,
                retries + 1,
            )
            r = session.post(url, json={"query": query, "variables": variables}, timeout=timeout_s)

            if r.status_code in (429, 500, 502, 503, 504):
                if attempt <= retries:
                    ra = r.headers.get("Retry-After")
                    if ra and ra.isdigit():
                        logger.warning("retrying after %ss | status=%s | url=%s", ra, r.status_code, url)
                        _sleep_jitter(float(ra), 0.5)
                    else:
                        logger.warning("retrying | status=%s | backoff=%s | url=%s", r.status_code, backoff, url)
                        _sleep_jitter(backoff, 0.5)
                    backoff = min(30.0, backoff * 2)
                    continue
                if r.status_code == 429:
                    raise CatalogRateLimitError(f"429 Too Many Requests: {_safe_body_preview(r)}")

            if r.status_code == 404:
                logger.info("not found | url=%s | variables=%s", url, variables)
                raise CatalogNotFoundError(f"404 Not Found: {_safe_body_preview(r, 200)}")

            if r.status_code >= 400:
                logger.error(
                    "http error | status=%s | url=%s | variables=%s | body=%s",
                    r.status_code,
                    url,
                    variables,
                    _safe_body_preview(r),
                )
                raise CatalogServiceError(f"{r.status_code} from {url}: {_safe_body_preview(r, 200)}")

            payload = r.json() if r.content else {}
            if not isinstance(payload, dict):
                raise CatalogServiceError(f"Unexpected response body from {url}")
            errors = payload.get("errors")
            if errors:
                logger.error("graphql errors | url=%s | errors=%s", url, json.dumps(errors, ensure_ascii=False))
                raise CatalogServiceError(f"GraphQL error: {json.dumps(errors, ensure_ascii=False)[:300]}")
            return payload.get("data") or {}

        except CatalogServiceError:
            raise

        except (requests.RequestException, ValueError) as e:
            if attempt <= retries:
                logger.warning("request error | url=%s | err=%r (retrying)", url, e)
                _sleep_jitter(backoff, 0.5)
                backoff = min(30.0, backoff * 2)
                continue
            raise CatalogServiceError(f"Request failed: {url} error={e}") from e

    raise CatalogServiceError(f"Request failed after {retries + 1} attempts: {url}")
