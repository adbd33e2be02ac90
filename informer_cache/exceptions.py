"""Exceptions related to informer-cache."""

__all__ = [
    "CacheException",
    "KindResolutionError",
    "CapabilityError",
    "TransportError",
    "DiscoveryError",
    "CompositionError",
    "ConfigError",
    "SelectorParseError",
    "ObjectNotFoundError",
    "CacheNotStartedError",
    "ListWatchError",
    "SchemeError",
]


class CacheException(Exception):
    """Generic base exception used for this library."""


class ConfigError(CacheException):
    """Raised when connection configuration is missing or malformed."""


class SelectorParseError(CacheException, ValueError):
    """Raised when a label or field selector string cannot be parsed."""


class KindResolutionError(CacheException):
    """Raised when a resource type or kind has no entry in the scheme."""


class SchemeError(CacheException, ValueError):
    """Raised when a type cannot be registered in a scheme."""


class CapabilityError(CacheException):
    """Raised when a type registered for a kind is not a resource object."""

    def __init__(self, obj_type: type, gvk: object) -> None:
        super().__init__(
            f"Type {obj_type.__name__} for kind '{gvk}' is not a resource object"
        )
        self.obj_type = obj_type
        self.gvk = gvk


class TransportError(CacheException):
    """Raised when an HTTP client cannot be created from the connection config."""


class DiscoveryError(CacheException):
    """Raised when API resources cannot be discovered from the API server."""


class CompositionError(CacheException):
    """Raised when two option sets cannot be merged into one."""

    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"Unable to combine {step}: {cause}")
        self.step = step


class ObjectNotFoundError(CacheException):
    """Raised when an object is not found in the cache."""


class CacheNotStartedError(CacheException):
    """Raised when reading from a cache that has not been started."""


class ListWatchError(CacheException):
    """Raised when listing or watching a resource fails."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
