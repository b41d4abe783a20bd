"""
Exception types raised by overlog.

Ingestion failures are terminal for the call that produced them. Queries on a
populated series never raise; they signal "no data" with ``None``.
"""


class OverlogError(Exception):
    """Base class for all overlog errors."""


class ParseError(OverlogError, ValueError):
    """Input is malformed for the requested format."""


class UnsupportedFormat(OverlogError, ValueError):
    """No adapter exists for the requested or detected format."""

    def __init__(self, fmt: str):
        self.format = fmt
        super().__init__(f"Unsupported format: {fmt}")


class InvalidInput(OverlogError, ValueError):
    """Caller supplied a missing file or an out-of-range argument."""


class ConfigError(OverlogError):
    """External tool or configuration value is unusable."""


class VideoToolError(OverlogError):
    """The external video tool exited with a failure status."""
