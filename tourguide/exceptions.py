class EngineError(Exception):
    """Base exception for the proximity notification engine."""

    pass


class LookupFailure(EngineError):
    """Raised when a places or enrichment lookup fails or returns malformed data."""

    pass


class ChannelUnavailable(EngineError):
    """Raised when a contextual update cannot be delivered to the conversation."""

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Conversation channel unavailable for {session_id}: {reason}")


class LocationError(EngineError):
    """Base for platform location provider errors."""

    code = "unavailable"


class LocationPermissionDenied(LocationError):
    code = "permission_denied"


class LocationTimeout(LocationError):
    code = "timeout"


class LocationUnavailable(LocationError):
    code = "unavailable"
