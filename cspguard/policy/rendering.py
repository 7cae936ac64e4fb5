"""Helpers for the layer that renders response bodies.

Templates and views call these while producing HTML to find out how each
inline block must be treated for the current request: carry a nonce
attribute, have its hash recorded, or nothing at all.
"""

from __future__ import annotations

from starlette.requests import Request

from cspguard.policy.builder import Directive, InlineExecution, PolicyRequestState


def get_policy_state(request: Request) -> PolicyRequestState | None:
    """Return the policy state the middleware attached to ``request``."""
    return getattr(request.state, "csp", None)


def inline_allowance(request: Request, directive: Directive) -> InlineExecution | None:
    state = get_policy_state(request)
    if state is None:
        return None
    return state.inline_execution_for(directive)


def nonce_attribute(request: Request, directive: Directive) -> str:
    """Return ``nonce="..."`` for nonce-mode directives, else an empty string."""
    state = get_policy_state(request)
    if state is None:
        return ""
    nonce = state.nonce_for(directive)
    if nonce is None:
        return ""
    return f'nonce="{nonce}"'


def record_inline_hash(request: Request, directive: Directive, digest: str) -> bool:
    """Record the base64 sha256 digest of an emitted inline block.

    Returns False without recording when ``directive`` is not in hash mode
    for this request, so callers need not check the mode first.
    """
    state = get_policy_state(request)
    if state is None or state.inline_execution_for(directive) is not InlineExecution.HASH:
        return False
    state.add_hash(directive, digest)
    return True
