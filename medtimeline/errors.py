"""Typed failures raised by the record index and timeline services.

Only mandatory-path problems are raised. Failures of individual event
categories never surface as exceptions; they are reported as
``CategoryDiagnostic`` entries on the assembled record instead.
"""


class TimelineError(Exception):
    """Base class for all errors raised to callers of this package."""


class SourceUnavailable(TimelineError):
    """The backing store could not be reached for a mandatory lookup."""


class RecordNotFound(TimelineError):
    """A mandatory identity or history lookup returned no row."""


class AccessDenied(TimelineError):
    """The requester is not allowed to see the requested patient."""


class InvalidCompositeId(TimelineError, ValueError):
    """A composite record id could not be split into patient and history ids."""
