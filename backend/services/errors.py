"""
Error taxonomy for the campaign judgment engine.

Parsing problems are recovered where they happen (the row is dropped and
counted). Pipeline problems abort the run and never reach the cache.
"""


class EngineError(Exception):
    """Base class for engine failures surfaced to callers."""


class SourceUnavailable(EngineError):
    """The row source could not be reached or rejected our credentials."""


class RangeNotFound(SourceUnavailable):
    """The requested named range does not exist in the source."""


class MalformedRow(EngineError):
    """A single raw row could not be turned into a record."""

    def __init__(self, row_index: int, reason: str):
        super().__init__(f"row {row_index}: {reason}")
        self.row_index = row_index
        self.reason = reason


class ConfigMissing(EngineError):
    """Required thresholds or TTLs are absent or unparsable."""

    def __init__(self, keys: list[str]):
        super().__init__(f"Missing or invalid settings: {', '.join(keys)}")
        self.keys = keys
