"""Typed failures raised inside the pipeline and resolved at workflow boundaries."""


class EmceeError(Exception):
    """Base class for expected pipeline failures."""


class ValidationError(EmceeError):
    """Input rejected before any storage access."""


class NotFoundError(EmceeError):
    """Missing event, layout, or segment."""


class PersistenceError(EmceeError):
    """A write could not be completed on either storage representation."""
