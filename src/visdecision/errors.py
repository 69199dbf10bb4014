"""Exceptions raised while turning trial recordings into feature rows."""


class DomainError(ValueError):
    """A mathematically invalid operation, e.g. a zero time-bin width."""


class InsufficientDataError(ValueError):
    """Too few neurons or time bins for the requested summary."""


class SchemaMismatchError(ValueError):
    """A trial's shape disagrees with itself or with the table width."""
