"""Exception hierarchy shared by the storage drivers and workflows."""


class ResultSinkError(Exception):
    """Base exception for resultsink."""
    pass


class ConfigurationError(ResultSinkError):
    """Required settings are missing. Fatal to the current request only."""
    pass


class RemoteCallError(ResultSinkError):
    """A remote API call failed (network, HTTP error, rejected request)."""
    pass


class NotFoundRace(RemoteCallError):
    """The remote object is already gone.

    Raised when a retry entry disappears between listing and reading, or is
    deleted by a concurrent sweep. Callers treat it as success.
    """
    pass


class DeadlineExceeded(RemoteCallError):
    """The per-invocation deadline expired before the work finished."""
    pass


class SerializationError(ResultSinkError):
    """A payload could not be encoded or decoded."""
    pass


class StateStoreError(ResultSinkError):
    """The local folder state database could not be read or written."""
    pass


class DeliveryError(ResultSinkError):
    """Creating the result document in the document store failed."""
    pass


class InsertError(ResultSinkError):
    """Inserting the result row into the warehouse failed."""
    pass
