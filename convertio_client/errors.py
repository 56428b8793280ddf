"""Typed exceptions raised by the Convertio client.

WHY: Callers need to tell apart a bad local setup, a network failure, an
error reported by the Convertio service itself, and a malformed response.
One class per failure kind keeps ``except`` clauses precise.

HOW: Everything derives from ConvertioError so callers can catch the whole
family at once. ConfigurationError also subclasses ValueError and
ConversionTimeoutError subclasses TimeoutError, so generic handlers still
work.

RULES:
- TransportError and ServiceError always carry ``message`` and ``code``
- ServiceError.code is None for locally detected integrity failures
- Missing local input files raise the builtin FileNotFoundError
- Using a Conversion before it was started raises the builtin RuntimeError
"""

from __future__ import annotations


class ConvertioError(Exception):
    """Base class for all errors raised by convertio_client."""


class ConfigurationError(ConvertioError, ValueError):
    """Raised for an empty API key or an invalid transport option."""


class TransportError(ConvertioError):
    """Raised when the HTTP exchange fails before any service response.

    ``code`` follows curl error numbering (7 connect, 28 timeout, 35 TLS,
    56 receive failure, 8 malformed reply, 0 unclassified).
    """

    def __init__(self, message: str, code: int = 0) -> None:
        self.message = message
        self.code = code
        super().__init__(f"Transport error {code}: {message}")


class ServiceError(ConvertioError):
    """Raised when the Convertio API answers with ``status: error``.

    Also used for local integrity failures after a download (empty
    result, failed write), in which case ``code`` is None.
    """

    def __init__(self, message: str, code: int | None = None) -> None:
        self.message = message
        self.code = code
        if code is None:
            super().__init__(message)
        else:
            super().__init__(f"Convertio API error {code}: {message}")


class ProtocolError(ConvertioError):
    """Raised when a response claims JSON but cannot be decoded."""


class ConversionTimeoutError(ConvertioError, TimeoutError):
    """Raised when Conversion.wait() exceeds its optional timeout."""
