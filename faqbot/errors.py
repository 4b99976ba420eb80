from __future__ import annotations


class FaqBotError(Exception):
    """Base class for all errors raised by faqbot."""


class StoreError(FaqBotError):
    """A store tier could not serve or persist the entry set."""


class StoreUnavailable(StoreError):
    """The backing medium (file, cache server, database) cannot be reached."""


class CacheMiss(StoreUnavailable):
    """The cache tier is reachable but holds no copy of the entry set."""


class DataCorrupt(StoreError):
    """The stored payload exists but cannot be decoded into entries."""


class WriteFailed(StoreError):
    """An authoritative write could not complete; nothing was committed."""


class InvalidEntry(FaqBotError, ValueError):
    """An entry failed validation (empty question or answer)."""


class UpstreamUnavailable(FaqBotError):
    """The language model provider failed, timed out or returned nothing."""
