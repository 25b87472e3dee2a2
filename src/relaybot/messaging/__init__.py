"""Outbound messaging to the chat channel."""

from relaybot.messaging.groupme import (
    GroupMeClient,
    RateLimiter,
    SendResult,
    clean_message,
    split_message,
)

__all__ = [
    "GroupMeClient",
    "RateLimiter",
    "SendResult",
    "clean_message",
    "split_message",
]
