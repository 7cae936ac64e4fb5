"""
cspguard - two-phase Content-Security-Policy middleware
"""

__version__ = "0.1.0"

from cspguard.policy.builder import (
    Directive,
    InlineExecution,
    PolicyBuilder,
    PolicyConfiguration,
    PolicyRequestState,
)

__all__ = [
    "Directive",
    "InlineExecution",
    "PolicyBuilder",
    "PolicyConfiguration",
    "PolicyRequestState",
]
