"""Tests for the rendering-layer helpers."""

from __future__ import annotations

import pytest
from starlette.requests import Request

from cspguard.errors import PolicyStateError
from cspguard.policy.builder import (
    Directive,
    InlineExecution,
    PolicyBuilder,
    PolicyConfiguration,
    PolicyRequestState,
)
from cspguard.policy.rendering import (
    get_policy_state,
    inline_allowance,
    nonce_attribute,
    record_inline_hash,
)


def _make_request(config: PolicyConfiguration | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": [],
        "root_path": "",
        "server": ("localhost", 8000),
        "client": ("127.0.0.1", 12345),
    }
    request = Request(scope)
    if config is not None:
        state = PolicyRequestState()
        PolicyBuilder().prepare(config, state, {})
        request.state.csp = state
    return request


class TestWithoutMiddleware:
    def test_no_state(self):
        request = _make_request()
        assert get_policy_state(request) is None
        assert inline_allowance(request, Directive.SCRIPT) is None
        assert nonce_attribute(request, Directive.SCRIPT) == ""
        assert record_inline_hash(request, Directive.SCRIPT, "abc") is False


class TestNonceAttribute:
    def test_nonce_mode_returns_attribute(self):
        request = _make_request(PolicyConfiguration(script_inline_execution=InlineExecution.NONCE))
        state = get_policy_state(request)
        assert nonce_attribute(request, Directive.SCRIPT) == f'nonce="{state.nonce}"'

    def test_other_modes_return_empty(self):
        request = _make_request(
            PolicyConfiguration(
                script_inline_execution=InlineExecution.HASH,
                style_inline_execution=InlineExecution.UNSAFE,
            )
        )
        assert nonce_attribute(request, Directive.SCRIPT) == ""
        assert nonce_attribute(request, Directive.STYLE) == ""

    def test_style_and_script_attributes_match(self):
        request = _make_request(
            PolicyConfiguration(
                script_inline_execution=InlineExecution.NONCE,
                style_inline_execution=InlineExecution.NONCE,
            )
        )
        assert nonce_attribute(request, Directive.SCRIPT) == nonce_attribute(request, Directive.STYLE)


class TestRecordInlineHash:
    def test_records_in_hash_mode(self):
        request = _make_request(PolicyConfiguration(style_inline_execution=InlineExecution.HASH))
        assert record_inline_hash(request, Directive.STYLE, "one") is True
        assert record_inline_hash(request, Directive.STYLE, "two") is True
        assert get_policy_state(request).hashes_for(Directive.STYLE) == ("one", "two")

    def test_ignored_outside_hash_mode(self):
        request = _make_request(PolicyConfiguration(script_inline_execution=InlineExecution.NONCE))
        assert record_inline_hash(request, Directive.SCRIPT, "abc") is False
        assert record_inline_hash(request, Directive.STYLE, "abc") is False

    def test_after_finalize_raises(self):
        config = PolicyConfiguration(script_inline_execution=InlineExecution.HASH)
        request = _make_request(config)
        state = get_policy_state(request)
        headers = {config.header_name: f"script-src{Directive.SCRIPT.placeholder};"}
        PolicyBuilder().finalize(config, state, headers)
        with pytest.raises(PolicyStateError):
            record_inline_hash(request, Directive.SCRIPT, "late")


def test_inline_allowance_reports_published_mode():
    request = _make_request(
        PolicyConfiguration(script_source="'self'", style_inline_execution=InlineExecution.UNSAFE)
    )
    assert inline_allowance(request, Directive.SCRIPT) is InlineExecution.REFUSE
    assert inline_allowance(request, Directive.STYLE) is InlineExecution.UNSAFE
