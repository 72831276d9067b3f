"""
Relay error taxonomy.

Raised inside the relay and converted to typed results at its public boundary;
``code`` is the stable string callers see on the wire.
"""


class RelayError(Exception):
    """Base class for every failure the relay reports to callers."""

    code = "internal"


class InvalidArgument(RelayError):
    """Missing or malformed identifiers; never worth retrying."""

    code = "invalid_argument"


class FrameTooLarge(InvalidArgument):
    code = "frame_too_large"

    def __init__(self, size: int, limit: int):
        super().__init__(f"Audio chunk too large: {size} bytes (limit {limit})")
        self.size = size
        self.limit = limit


class SessionNotFound(RelayError):
    """The session id (or channel) does not resolve, e.g. the broadcast already ended."""

    code = "session_not_found"


class SessionNotActive(RelayError):
    code = "session_not_active"


class Internal(RelayError):
    """Store inconsistency or an unexpected failure inside the relay."""

    code = "internal"
