"""Two-phase Content-Security-Policy header construction.

Phase 1 (``PolicyBuilder.prepare``) runs before the handler produces a body.
It emits the directives, publishes the inline-execution mode of every
inline-capable directive into the request's ``PolicyRequestState`` and writes
a provisional header. Hash-mode directives carry a placeholder token at that
point because their hash list is only known once the body exists.

Phase 2 (``PolicyBuilder.finalize``) runs after the body has been produced
and replaces each placeholder with the hashes the rendering layer recorded.

Header layout::

    default-src {src};script-src{ src}{ inline};style-src{ src}{ inline};report-uri {uri};
"""

from __future__ import annotations

import enum
import secrets
from collections.abc import Iterable, MutableMapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from cspguard.errors import PolicyConfigError, PolicyStateError
from cspguard.utils.sanitize import clean_source

logger = structlog.get_logger()

CSP_HEADER = "Content-Security-Policy"
CSP_REPORT_ONLY_HEADER = "Content-Security-Policy-Report-Only"

_DIRECTIVE_TERMINATOR = ";"
_UNSAFE_INLINE_SOURCE = " 'unsafe-inline'"

# 128 bits, rendered as 32 lowercase hex characters
_NONCE_BYTES = 16


class InlineExecution(str, enum.Enum):
    """How inline <script>/<style> blocks may execute for a directive."""

    REFUSE = "refuse"
    UNSAFE = "unsafe"
    NONCE = "nonce"
    HASH = "hash"

    @classmethod
    def parse(cls, value: InlineExecution | str | None) -> InlineExecution:
        """Accept an enum member or its case-insensitive name/value."""
        if isinstance(value, cls):
            return value
        if value is None or not str(value).strip():
            return cls.REFUSE
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value, member.name.lower()):
                return member
        raise PolicyConfigError(f"Unknown inline execution mode: {value!r}")


class Directive(enum.Enum):
    """Directives that support an inline-execution mode."""

    SCRIPT = "script-src"
    STYLE = "style-src"

    @property
    def keyword(self) -> str:
        return self.value

    @property
    def placeholder(self) -> str:
        # Angle brackets never appear in CSP source expressions.
        return _PLACEHOLDERS[self]


_PLACEHOLDERS = {
    Directive.SCRIPT: "<ScriptHashListPlaceholder>",
    Directive.STYLE: "<StyleHashListPlaceholder>",
}

# Emission order is part of the wire format.
INLINE_DIRECTIVES: tuple[Directive, ...] = (Directive.SCRIPT, Directive.STYLE)


@dataclass(frozen=True)
class PolicyConfiguration:
    """Immutable policy for one middleware instance (or one route override)."""

    default_source: str | None = None
    script_source: str | None = None
    script_inline_execution: InlineExecution = InlineExecution.REFUSE
    style_source: str | None = None
    style_inline_execution: InlineExecution = InlineExecution.REFUSE
    report_only: bool = False
    report_uri: str | None = None

    def __post_init__(self) -> None:
        # Frozen dataclass: normalize through object.__setattr__.
        for name in ("default_source", "script_source", "style_source", "report_uri"):
            object.__setattr__(self, name, clean_source(getattr(self, name)))
        for name in ("script_inline_execution", "style_inline_execution"):
            object.__setattr__(self, name, InlineExecution.parse(getattr(self, name)))

    @property
    def header_name(self) -> str:
        return CSP_REPORT_ONLY_HEADER if self.report_only else CSP_HEADER

    def source_for(self, directive: Directive) -> str | None:
        if directive is Directive.SCRIPT:
            return self.script_source
        return self.style_source

    def inline_execution_for(self, directive: Directive) -> InlineExecution:
        if directive is Directive.SCRIPT:
            return self.script_inline_execution
        return self.style_inline_execution

    @property
    def hash_directives(self) -> tuple[Directive, ...]:
        return tuple(
            d for d in INLINE_DIRECTIVES if self.inline_execution_for(d) is InlineExecution.HASH
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "default_source": self.default_source,
            "script_source": self.script_source,
            "script_inline_execution": self.script_inline_execution.value,
            "style_source": self.style_source,
            "style_inline_execution": self.style_inline_execution.value,
            "report_only": self.report_only,
            "report_uri": self.report_uri,
        }


@dataclass
class PolicyRequestState:
    """Per-request policy data shared with the rendering layer.

    Created fresh for every request and never shared across requests.
    """

    nonce: str | None = None
    inline_execution: dict[Directive, InlineExecution] = field(default_factory=dict)
    hash_lists: dict[Directive, list[str]] = field(default_factory=dict)
    finalized: bool = False

    def get_nonce(self) -> str:
        """Return the request nonce, generating it on first use."""
        if self.nonce is None:
            self.nonce = secrets.token_hex(_NONCE_BYTES)
        return self.nonce

    def inline_execution_for(self, directive: Directive) -> InlineExecution | None:
        """Mode published in phase 1, or None if the directive was not emitted."""
        return self.inline_execution.get(directive)

    def nonce_for(self, directive: Directive) -> str | None:
        if self.inline_execution.get(directive) is InlineExecution.NONCE:
            return self.get_nonce()
        return None

    def add_hash(self, directive: Directive, value: str) -> None:
        """Append a base64 sha256 digest for an inline block of ``directive``."""
        if self.finalized:
            raise PolicyStateError(f"{directive.keyword} hash list already finalized")
        hashes = self.hash_lists.get(directive)
        if hashes is None:
            raise PolicyStateError(f"{directive.keyword} is not in hash mode for this request")
        hashes.append(value)

    def hashes_for(self, directive: Directive) -> tuple[str, ...]:
        return tuple(self.hash_lists.get(directive, ()))


def render_hash_list(values: Iterable[str]) -> str:
    """Render hashes as the text that replaces a directive placeholder.

    Each entry is preceded by a single space so the result appends directly
    after the directive keyword or its source list.
    """
    return "".join(f" 'sha256-{value}'" for value in values)


class PolicyBuilder:
    """Builds and finalizes the CSP header for one request at a time.

    The builder holds no state of its own; everything request-specific lives
    in the ``PolicyRequestState`` passed to each phase.
    """

    def prepare(
        self,
        config: PolicyConfiguration,
        state: PolicyRequestState,
        headers: MutableMapping[str, str],
    ) -> str | None:
        """Phase 1: write the provisional header. Returns it, or None."""
        parts: list[str] = []

        if config.default_source:
            parts.append(f"default-src {config.default_source}{_DIRECTIVE_TERMINATOR}")

        for directive in INLINE_DIRECTIVES:
            self._append_inline_directive(parts, config, state, directive)

        if config.report_uri:
            parts.append(f"report-uri {config.report_uri}{_DIRECTIVE_TERMINATOR}")

        value = "".join(parts)
        if not value:
            logger.debug("csp_header_skipped", reason="no directives")
            return None

        headers[config.header_name] = value
        logger.debug(
            "csp_header_prepared",
            header=config.header_name,
            placeholders=[d.keyword for d in config.hash_directives],
        )
        return value

    def _append_inline_directive(
        self,
        parts: list[str],
        config: PolicyConfiguration,
        state: PolicyRequestState,
        directive: Directive,
    ) -> None:
        source = config.source_for(directive)
        mode = config.inline_execution_for(directive)
        if not source and mode is InlineExecution.REFUSE:
            return

        parts.append(directive.keyword)
        if source:
            parts.append(f" {source}")

        state.inline_execution[directive] = mode
        if mode is InlineExecution.UNSAFE:
            parts.append(_UNSAFE_INLINE_SOURCE)
        elif mode is InlineExecution.NONCE:
            parts.append(f" 'nonce-{state.get_nonce()}'")
        elif mode is InlineExecution.HASH:
            state.hash_lists[directive] = []
            parts.append(directive.placeholder)

        parts.append(_DIRECTIVE_TERMINATOR)

    def finalize(
        self,
        config: PolicyConfiguration,
        state: PolicyRequestState,
        headers: MutableMapping[str, str],
    ) -> str | None:
        """Phase 2: substitute hash placeholders. Returns the final value, or None."""
        header_name = config.header_name
        value = headers.get(header_name)
        if value is None or not value.strip():
            return None

        for directive in config.hash_directives:
            hashes = state.hash_lists.get(directive)
            if hashes is None:
                # Phase 1 did not run for this state; nothing to substitute.
                continue
            value = value.replace(directive.placeholder, render_hash_list(hashes), 1)

        state.finalized = True
        headers[header_name] = value

        unresolved = [d.keyword for d in INLINE_DIRECTIVES if d.placeholder in value]
        if unresolved:
            logger.error("csp_placeholder_unresolved", header=header_name, directives=unresolved)
        else:
            logger.debug(
                "csp_header_finalized",
                header=header_name,
                hashes={d.keyword: len(state.hash_lists[d]) for d in state.hash_lists},
            )
        return value
