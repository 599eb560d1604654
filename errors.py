class DataAccessError(RuntimeError):
    """Raised when the local store fails to fetch, save or delete."""


class ValidationError(ValueError):
    """Raised when input does not satisfy a field rule."""
