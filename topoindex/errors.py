"""
Error kinds raised by the topographic index computation.

All errors are raised to the caller; the library never terminates
the process.
"""


class TopoIndexError(Exception):
    """Base class for topographic index errors."""


class ResourceExhaustionError(TopoIndexError):
    """A scratch grid could not be allocated."""


class UnsupportedConfigurationError(TopoIndexError):
    """
    The run is configured in a way the algorithm does not support.

    Raised for a neighbour-direction count other than 8 and for a
    non-positive vertical resolution.
    """


class InvalidOrderingError(TopoIndexError):
    """The visitation order does not cover the basin in descending elevation."""
