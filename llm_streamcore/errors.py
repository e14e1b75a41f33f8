"""
Error taxonomy for llm_streamcore.

Only TransportError and SetupError ever leave the core as raised
exceptions. ParseError and ToolExecutionError are raised and caught
internally; timeouts are reported as exchange state, not exceptions.
"""
from typing import Optional


class StreamCoreError(Exception):
    """Base class for all llm_streamcore errors."""


class SetupError(StreamCoreError):
    """Irrecoverable setup problem (missing credentials, unknown vendor)."""


class TransportError(StreamCoreError):
    """
    Network or envelope failure talking to a vendor.

    Attributes:
        vendor: Vendor identifier (e.g. "openai")
        message: Underlying error message
        status_code: HTTP status if the vendor answered at all
    """

    def __init__(self, vendor: str, message: str, status_code: Optional[int] = None) -> None:
        self.vendor = vendor
        self.message = message
        self.status_code = status_code
        super().__init__(f"{vendor} streaming error: {message}")


class ParseError(StreamCoreError):
    """A single wire frame could not be decoded."""

    def __init__(self, vendor: str, frame: str) -> None:
        self.vendor = vendor
        self.frame = frame
        super().__init__(f"{vendor}: malformed frame {frame[:80]!r}")


class ToolExecutionError(StreamCoreError):
    """Raised by tool handlers; converted into a failed ToolResult by the executor."""
