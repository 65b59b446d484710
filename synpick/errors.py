"""Exception types raised by synpick."""

from typing import Optional


class SynpickError(Exception):
    """Base class for all synpick errors."""


class CatalogUnavailable(SynpickError):
    """The remote model catalog could not be read.

    ``kind`` tells operators which side failed:

    - ``"no_response"``: the request never got an answer (timeout, DNS, refused)
    - ``"error_response"``: the server answered with a non-2xx status
    - ``"malformed"``: the server answered 2xx but the body was not a catalog
    """

    def __init__(
        self,
        message: str,
        kind: str = "no_response",
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.body = body


class RecordInvalid(SynpickError):
    """A single catalog entry failed validation."""

    def __init__(self, reason: str, index: Optional[int] = None):
        location = f"entry {index}: " if index is not None else ""
        super().__init__(f"{location}{reason}")
        self.reason = reason
        self.index = index


class CacheUnavailable(SynpickError):
    """The model cache could not be read or written."""


class ConfigError(SynpickError):
    """Configuration could not be loaded, validated or saved."""
