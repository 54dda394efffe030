"""
Engine error taxonomy.

Errors are terminal for the request that raised them; the HTTP layer maps
them to status codes in ``examcore.main``.
"""


class EngineError(Exception):
    status_code = 500
    error_type = "engine_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(EngineError):
    """A referenced paper, submission or question does not exist."""
    status_code = 404
    error_type = "not_found"


class InvalidState(EngineError):
    """The submission's state does not allow the requested transition."""
    status_code = 409
    error_type = "invalid_state"
