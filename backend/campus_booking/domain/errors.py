class DomainError(Exception):
    """Base class for reservation domain failures."""


class ValidationError(DomainError):
    pass


class InvalidTimeRangeError(ValidationError):
    pass


class MissingDescriptionError(ValidationError):
    pass


class InvalidReasonError(ValidationError):
    pass


class InvalidTransitionError(ValidationError):
    pass


class NotFoundError(DomainError):
    pass


class SpaceUnavailableError(NotFoundError):
    pass


class AuthorizationError(DomainError):
    pass


class RemoteUnavailableError(DomainError):
    """The authoritative store could not be reached or failed the request."""


class LocalCacheError(DomainError):
    """A write to the local cache failed."""
