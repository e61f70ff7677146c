"""
Breach Detection
================

Screens secrets against a k-anonymity breach corpus.

Only the first five hex characters of the secret's SHA-1 digest ever
leave the process. The service answers with every known suffix for that
prefix and the match is done locally.

The detector fails open: transport errors and non-2xx responses produce
a "not breached" result and a warning, never an exception.
"""

from __future__ import annotations

import hashlib
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import httpx

from credguard.core.config import BreachConfig
from credguard.core.constants import BREACH_HASH_PREFIX_LENGTH
from credguard.core.errors import ExternalServiceError
from credguard.core.logging import get_secure_logger

logger = get_secure_logger(__name__)


@dataclass(frozen=True, slots=True)
class BreachResult:
    is_breached: bool
    breach_count: int
    hash_prefix: str


def sha1_hex(secret: str) -> str:
    """Uppercase hex SHA-1 of a secret's UTF-8 bytes."""
    return hashlib.sha1(secret.encode("utf-8")).hexdigest().upper()


def parse_range_response(body: str) -> Dict[str, int]:
    """
    Parse "SUFFIX:COUNT" lines into a suffix -> count map.

    Tolerates CRLF line endings and skips malformed lines.
    """
    counts: Dict[str, int] = {}
    for line in body.splitlines():
        suffix, sep, count = line.strip().partition(":")
        if not sep:
            continue
        try:
            counts[suffix.strip().upper()] = int(count.strip())
        except ValueError:
            continue
    return counts


class BreachDetector:
    """
    Client for a range-query breach corpus.

    Usage:
        with BreachDetector(config.breach) as detector:
            result = detector.check(candidate)
            if result.is_breached:
                warn(result.breach_count)

    A preconfigured httpx.Client may be injected; the detector only closes
    clients it created itself.
    """

    def __init__(
        self,
        config: Optional[BreachConfig] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._config = config or BreachConfig()
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._config.timeout)

    def __enter__(self) -> BreachDetector:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self._config.user_agent}
        if self._config.add_padding:
            headers["Add-Padding"] = "true"
        return headers

    def _fetch_range(self, prefix: str) -> str:
        """
        GET the suffix list for a hash prefix.

        Raises:
            ExternalServiceError: On transport failure or non-2xx status
        """
        url = f"{self._config.base_url.rstrip('/')}/range/{prefix}"
        try:
            response = self._client.get(url, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Breach range query failed: {type(e).__name__}") from e
        return response.text

    def check(self, secret: str) -> BreachResult:
        """
        Check one secret against the corpus.

        Returns:
            BreachResult; (False, 0, prefix) when the service is unavailable
        """
        digest = sha1_hex(secret)
        prefix = digest[:BREACH_HASH_PREFIX_LENGTH]
        suffix = digest[BREACH_HASH_PREFIX_LENGTH:]

        try:
            body = self._fetch_range(prefix)
        except ExternalServiceError as e:
            logger.warning("Breach check unavailable for prefix %s: %s", prefix, e)
            return BreachResult(is_breached=False, breach_count=0, hash_prefix=prefix)

        count = parse_range_response(body).get(suffix, 0)
        return BreachResult(is_breached=count > 0, breach_count=count, hash_prefix=prefix)

    def check_batch(
        self,
        secrets: Iterable[str],
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> List[BreachResult]:
        """
        Check secrets one at a time with a delay between requests.

        Stops early, returning the results gathered so far, when
        cancel_event is set or timeout seconds have elapsed.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        results: List[BreachResult] = []

        for index, secret in enumerate(secrets):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Breach batch cancelled after %d check(s)", len(results))
                break
            if deadline is not None and time.monotonic() >= deadline:
                logger.info("Breach batch timed out after %d check(s)", len(results))
                break
            if index > 0 and self._config.request_delay > 0:
                time.sleep(self._config.request_delay)
            results.append(self.check(secret))

        return results
