"""Exception hierarchy for cspguard."""

from __future__ import annotations


class CSPGuardError(Exception):
    """Base class for all cspguard errors."""


class PolicyConfigError(CSPGuardError):
    """A policy configuration value or file cannot be used."""


class PolicyStateError(CSPGuardError):
    """Request-scoped policy state was used outside its contract.

    Raised when the rendering layer records a hash for a directive that is
    not in hash mode, or after the header has already been finalized.
    """
