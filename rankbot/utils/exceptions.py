"""
Error taxonomy for the match lifecycle and rating engine.

Every error carries a log-friendly message and a user-facing message that the
presentation layer can show as-is.
"""

class RankingError(Exception):
    """Base exception for ranking core errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class ValidationError(RankingError):
    """Raised when input is malformed or semantically invalid."""
    def __init__(self, reason: str):
        super().__init__(f"Validation failed: {reason}", f"❌ {reason}")
        self.reason = reason


class NotFoundError(RankingError):
    """Raised when a referenced match or participant does not exist."""
    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity.capitalize()} {entity_id} not found",
            f"❌ {entity.capitalize()} #{entity_id} was not found."
        )
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(RankingError):
    """Raised when a state precondition is violated (duplicate pending match, wrong status)."""
    def __init__(self, reason: str):
        super().__init__(f"Conflict: {reason}", f"⚠️ {reason}")
        self.reason = reason


class PermissionDeniedError(RankingError):
    """Raised when the acting participant may not perform the transition."""
    def __init__(self, reason: str):
        super().__init__(f"Permission denied: {reason}", f"⛔ {reason}")
        self.reason = reason


class InternalError(RankingError):
    """Raised when the atomic store write could not commit."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Storage failure during {operation}: {details}",
            "❌ Database error occurred. Nothing was changed, please try again later."
        )
        self.operation = operation
