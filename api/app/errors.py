class DrawError(Exception):
    """Base for every error the lucky-draw endpoints surface to the caller."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(DrawError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "User not authenticated"


class RateLimitExceeded(DrawError):
    status_code = 429
    code = "DAILY_LIMIT_REACHED"
    default_message = "Daily spin limit reached"


class ServiceUnavailable(DrawError):
    status_code = 503
    code = "NO_REWARDS"
    default_message = "No rewards available"


class NotFound(DrawError):
    # wrong code, foreign code and already-claimed code all land here
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Invalid claim code or reward already claimed"


class Expired(DrawError):
    status_code = 400
    code = "EXPIRED"
    default_message = "Reward has expired"


class Conflict(DrawError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Reward was claimed by a concurrent request"


class InternalError(DrawError):
    pass
