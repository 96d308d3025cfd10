"""HTTP client fetching the latest block with bounded retries."""

from __future__ import annotations

import time
from typing import Callable

import httpx
import structlog

from ..config import SourceConfig
from ..errors import ParseFailure, SourceUnreachable
from .models import DataUnit
from .parser import BlockParser


class SourceClient:
    """Fetch and normalise the latest block from the configured endpoint."""

    def __init__(
        self,
        config: SourceConfig,
        client: httpx.Client | None = None,
        parser: BlockParser | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.parser = parser or BlockParser()
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("block_harvester").bind(component="source_client")
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=config.timeout_seconds,
            headers={"Accept": "application/json", "User-Agent": config.user_agent},
        )

    def close(self) -> None:
        self._client.close()

    def fetch_latest(self) -> DataUnit:
        """Return the current latest block.

        Every failed attempt, whether transport error, non-2xx status or an
        unparseable body, is retried until ``max_attempts`` is reached, with
        ``backoff_base ** attempt`` seconds of sleep in between.

        Raises:
            ParseFailure: the final attempt returned a payload without a
                usable block number.
            SourceUnreachable: the final attempt failed at the HTTP level.
        """

        max_attempts = self.config.max_attempts
        last_error: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            self.logger.debug(
                "fetch_attempt",
                url=self.config.endpoint_url,
                attempt=attempt,
                max_attempts=max_attempts,
            )
            try:
                response = self._client.get(
                    self.config.endpoint_url, timeout=self.config.timeout_seconds
                )
                response.raise_for_status()
                unit = self.parser.parse_text(response.text)
            except (httpx.HTTPError, ParseFailure) as exc:
                last_error = exc
                self.logger.warning(
                    "fetch_error",
                    url=self.config.endpoint_url,
                    attempt=attempt,
                    error=str(exc),
                )
                if attempt < max_attempts:
                    delay = self.config.backoff_base ** attempt
                    self.logger.info("fetch_backoff", attempt=attempt, delay_seconds=delay)
                    self._sleep(delay)
                continue
            self.logger.info(
                "block_fetched",
                sequence_number=unit.sequence_number,
                attempt=attempt,
            )
            return unit

        self.logger.error(
            "fetch_exhausted",
            url=self.config.endpoint_url,
            attempts=max_attempts,
            error=str(last_error),
        )
        if isinstance(last_error, ParseFailure):
            raise last_error
        raise SourceUnreachable(
            f"Fetch failed after {max_attempts} attempts: {self.config.endpoint_url}",
            attempts=max_attempts,
        ) from last_error

    def check_health(self) -> bool:
        """Probe the endpoint once; any failure is reported as ``False``."""

        try:
            response = self._client.get(
                self.config.endpoint_url, timeout=self.config.health_timeout_seconds
            )
        except httpx.HTTPError as exc:
            self.logger.warning("health_check_failed", url=self.config.endpoint_url, error=str(exc))
            return False
        healthy = response.status_code == 200
        if not healthy:
            self.logger.warning(
                "health_check_failed",
                url=self.config.endpoint_url,
                status=response.status_code,
            )
        return healthy


__all__ = ["SourceClient"]
