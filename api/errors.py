"""
Error taxonomy for the matching engine.

Every error carries a stable ``code`` so batch summaries and API responses
can report failures without leaking exception class names.
"""


class MatchingError(Exception):
    """Base class for all matching engine errors."""

    code = "MATCH_ERROR"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EntityNotFound(MatchingError):
    """Opportunity or candidate id does not exist."""

    code = "DB_NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class MissingEmbedding(MatchingError):
    """Source entity has no embedding computed yet."""

    code = "MATCH_NO_EMBEDDING"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity} {entity_id} has no embedding. "
            f"Regenerate it before matching."
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidEmbedding(MatchingError):
    """Query embedding is empty, non-finite or of the wrong dimensionality."""

    code = "VAL_INVALID_INPUT"


class RetrievalTimeout(MatchingError):
    """A store call did not complete within the configured timeout."""

    code = "RETRIEVAL_TIMEOUT"
    retryable = True


class RetrievalUnavailable(MatchingError):
    """A store backend could not be reached."""

    code = "RETRIEVAL_UNAVAILABLE"
    retryable = True


class InvalidConfiguration(MatchingError):
    """Configuration failed validation at startup."""

    code = "CONFIG_INVALID"
