"""Exception taxonomy for the analysis pipeline.

Missing signals and entitlement denials are *not* exceptions; they are
returned as data.  Only the two failure classes below are raised.
"""

from __future__ import annotations


class ListingAuditError(Exception):
    """Base class for all pipeline errors."""


class InvariantViolation(ListingAuditError):
    """A bound or shape invariant was broken.

    Fatal to the current request.  Raised before any usage is recorded or
    any result is written, so a partial result is never persisted.
    """


class InvalidInputError(InvariantViolation):
    """The request payload could not be normalized into an ``AnalysisInput``."""


class ModelCallError(ListingAuditError):
    """A model completion was empty or otherwise unusable.

    Always recovered locally by the engine that issued the call.
    """
