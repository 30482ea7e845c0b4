"""Exception and warning types raised by the solvers."""

from __future__ import annotations


class SpaceFillError(Exception):
    """Base class for every error raised by :mod:`spacefill`."""


class ConfigurationError(SpaceFillError, ValueError):
    """A solver, shape or optimizer was constructed with invalid parameters."""


class CapacityExceeded(SpaceFillError, RuntimeWarning):
    """An ADF leaf at maximum depth holds more primitives than its capacity.

    Emitted through :func:`warnings.warn`; sampling that leaf degrades to a
    linear scan but stays exact.
    """
