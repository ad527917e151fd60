# errors.py
"""Exceptions raised across the dashboard. Views catch these and never crash."""


class EcoCarbonError(Exception):
    """Base class for all dashboard errors."""


class ValidationError(EcoCarbonError):
    """Missing or malformed input, raised before anything is sent to the store."""

    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field


class RetrievalError(EcoCarbonError):
    """A read against the record store failed."""

    def __init__(self, message, table=None):
        super().__init__(message)
        self.table = table


class MutationError(EcoCarbonError):
    """An insert, update or delete against the record store failed."""

    def __init__(self, message, table=None):
        super().__init__(message)
        self.table = table


class AuthError(EcoCarbonError):
    """Sign-in or sign-up was rejected. The message is shown to the user as is."""


class AccessDeniedError(AuthError):
    """The signed-in role may not perform this operation."""


class OrphanedIdentityError(EcoCarbonError):
    """An identity exists without a profile and could not be removed."""

    def __init__(self, message, identity_id=None):
        super().__init__(message)
        self.identity_id = identity_id


class NavigationError(EcoCarbonError):
    """The requested view is not reachable from the current one."""
