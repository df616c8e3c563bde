# trainer_hub/errors.py

class TrainerHubError(Exception):
    """Base exception for trainer hub errors."""
    pass


# --------------------
# Validation
# --------------------

class InvalidDateError(TrainerHubError, ValueError):
    """Raised when a value cannot be read as a calendar date."""
    pass

class InvalidTimeError(TrainerHubError, ValueError):
    """Raised when a time is not a valid 24-hour HH:MM or HH:MM:SS value."""
    pass

class InvalidStatusError(TrainerHubError, ValueError):
    """Raised when a session status is not one of the known values."""
    pass


# --------------------
# Bookkeeping
# --------------------

class NoSessionsRemainingError(TrainerHubError):
    """Raised when a client has no sessions left to book against."""
    pass

class InvalidStatusTransitionError(TrainerHubError):
    """Raised when a session cannot move from its current status to the requested one."""
    pass

class SessionClientMismatchError(TrainerHubError, ValueError):
    """Raised when a session is addressed through a client that does not own it."""
    pass


# --------------------
# Lookups
# --------------------

class NotFoundError(TrainerHubError):
    """Base exception for missing rows."""
    pass

class ClientNotFound(NotFoundError):
    pass

class SessionNotFound(NotFoundError):
    pass

class PurchaseNotFound(NotFoundError):
    pass

class PackageNotFound(NotFoundError):
    pass

class PaymentNotFound(NotFoundError):
    pass


# --------------------
# Infrastructure
# --------------------

class PersistenceError(TrainerHubError):
    """Raised when the database rejects a read or write."""
    pass

class NotificationError(TrainerHubError):
    """Raised when an email or SMS could not be handed to the provider."""
    pass


class PartialUpdateWarning(UserWarning):
    """An operation partly succeeded, e.g. a session was deleted but its balance was not refunded."""
    pass
