"""GroupMe bot client for relaying alerts to a chat channel.

This module implements posting text through a GroupMe bot. It includes:
- Message cleanup and splitting to the 1000 character limit
- Retry semantics with backoff
- Rate limiting to prevent flooding the group
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from relaybot.config.schema import GROUPME_POST_URL

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000

# Markup the upstream alert formatter emits that GroupMe shows literally
_STRIPPED_TAGS = ("<b>", "</b>")


@dataclass
class RateLimiter:
    """Sliding window rate limiter for outgoing messages.

    Attributes:
        max_requests: Maximum number of requests in the time window.
        window_seconds: Time window in seconds (default: 60).
    """

    max_requests: int = 10
    window_seconds: int = 60
    _timestamps: deque[float] = field(default_factory=deque)

    def _expire(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] < cutoff:
            self._timestamps.popleft()

    def acquire(self) -> bool:
        """Try to acquire a rate limit slot.

        Returns:
            True if request is allowed, False if rate limited.
        """
        now = time.monotonic()
        self._expire(now)
        if len(self._timestamps) >= self.max_requests:
            return False
        self._timestamps.append(now)
        return True

    def time_until_available(self) -> float:
        """Seconds until a slot frees up, or 0 if one is available now."""
        self._expire(time.monotonic())
        if len(self._timestamps) < self.max_requests:
            return 0.0
        wait_time = (self._timestamps[0] + self.window_seconds) - time.monotonic()
        return max(0.0, wait_time)


@dataclass
class SendResult:
    """Result of a message send attempt."""

    success: bool
    message: str
    status_code: int | None = None
    attempts: int = 1
    chunks: int = 1


def clean_message(message: str) -> str:
    """Strip markup GroupMe cannot render."""
    for tag in _STRIPPED_TAGS:
        message = message.replace(tag, "")
    return message


def split_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a message into chunks of at most ``max_length`` characters.

    Chunks break after the last newline that fits; a line longer than
    the limit is cut hard.

    Args:
        message: Text to split
        max_length: Maximum characters per chunk

    Returns:
        List of non-empty chunks (a single chunk if the text fits)
    """
    chunks: list[str] = []
    remaining = message
    while len(remaining) > max_length:
        cut = remaining.rfind("\n", 0, max_length + 1)
        if cut <= 0:
            chunks.append(remaining[:max_length])
            remaining = remaining[max_length:]
        else:
            chunks.append(remaining[:cut])
            remaining = remaining[cut + 1 :]
    if remaining or not chunks:
        chunks.append(remaining)
    return chunks


class GroupMeClient:
    """Posts messages to a GroupMe group through a bot.

    Features:
    - Cleans and splits long messages
    - Retry semantics: 3 attempts with 1s→2s→4s backoff
    - Rate limiting: max 10 messages/minute
    """

    MAX_RETRIES = 3
    RETRY_DELAYS: ClassVar[list[int]] = [1, 2, 4]

    RATE_LIMIT_MAX = 10
    RATE_LIMIT_WINDOW = 60  # seconds

    # Retrying these will not help
    NON_RETRYABLE: ClassVar[frozenset[int]] = frozenset({400, 401, 403, 404})

    def __init__(
        self,
        bot_id: str,
        *,
        api_url: str = GROUPME_POST_URL,
        max_message_length: int = MAX_MESSAGE_LENGTH,
        rate_limiter: RateLimiter | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Any = time.sleep,
    ) -> None:
        """Initialize the GroupMe client.

        Args:
            bot_id: GroupMe bot id.
            api_url: Bot post endpoint.
            max_message_length: Longer messages are split.
            rate_limiter: Optional custom rate limiter.
            timeout: HTTP request timeout in seconds.
            transport: Optional httpx transport (for testing).
            sleep: Function used to wait between retries.
        """
        self._bot_id = bot_id
        self._api_url = api_url
        self._max_message_length = max_message_length
        self._timeout = timeout
        self._transport = transport
        self._sleep = sleep
        self._rate_limiter = rate_limiter or RateLimiter(
            max_requests=self.RATE_LIMIT_MAX,
            window_seconds=self.RATE_LIMIT_WINDOW,
        )

    def send(self, message: str) -> SendResult:
        """Clean, split and post a message.

        Stops at the first chunk that cannot be delivered.

        Args:
            message: Text to post.

        Returns:
            SendResult; never raises on HTTP failure.
        """
        chunks = split_message(clean_message(message), self._max_message_length)
        total_attempts = 0

        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            for index, chunk in enumerate(chunks, start=1):
                if not self._rate_limiter.acquire():
                    wait_time = self._rate_limiter.time_until_available()
                    logger.warning(
                        "GroupMe rate limit exceeded. Wait %.1f seconds.",
                        wait_time,
                    )
                    return SendResult(
                        success=False,
                        message=f"Rate limited. Wait {wait_time:.1f}s",
                        attempts=total_attempts,
                        chunks=len(chunks),
                    )

                result = self._post_with_retries(client, chunk)
                total_attempts += result.attempts
                if not result.success:
                    logger.error(
                        "Failed to send chunk %d/%d: %s",
                        index,
                        len(chunks),
                        result.message,
                    )
                    result.attempts = total_attempts
                    result.chunks = len(chunks)
                    return result

        return SendResult(
            success=True,
            message="Message sent",
            status_code=202,
            attempts=total_attempts,
            chunks=len(chunks),
        )

    def _build_payload(self, text: str) -> dict[str, Any]:
        return {"text": text, "bot_id": self._bot_id}

    def _post_with_retries(self, client: httpx.Client, text: str) -> SendResult:
        last_error = ""
        last_status: int | None = None
        payload = self._build_payload(text)

        for attempt in range(self.MAX_RETRIES):
            try:
                response = client.post(self._api_url, json=payload)
                last_status = response.status_code

                if response.is_success:
                    logger.debug("GroupMe message posted (attempt %d)", attempt + 1)
                    return SendResult(
                        success=True,
                        message="Message sent",
                        status_code=response.status_code,
                        attempts=attempt + 1,
                    )

                if response.status_code in self.NON_RETRYABLE:
                    last_error = f"HTTP {response.status_code}: {response.text}"
                    return SendResult(
                        success=False,
                        message=last_error,
                        status_code=last_status,
                        attempts=attempt + 1,
                    )

                last_error = f"HTTP {response.status_code}"

            except httpx.TimeoutException:
                last_error = "Request timeout"
            except httpx.RequestError as e:
                last_error = f"Request error: {e}"

            if attempt < self.MAX_RETRIES - 1:
                delay = self.RETRY_DELAYS[attempt]
                logger.warning(
                    "GroupMe send failed (attempt %d/%d): %s. Retrying in %ds...",
                    attempt + 1,
                    self.MAX_RETRIES,
                    last_error,
                    delay,
                )
                self._sleep(delay)

        logger.error(
            "GroupMe send failed after %d attempts: %s",
            self.MAX_RETRIES,
            last_error,
        )
        return SendResult(
            success=False,
            message=last_error,
            status_code=last_status,
            attempts=self.MAX_RETRIES,
        )
