"""
cspguard CLI
"""
import argparse
import json
import sys

from cspguard.errors import CSPGuardError
from cspguard.logging_config import setup_logging
from cspguard.policy.builder import (
    Directive,
    InlineExecution,
    PolicyBuilder,
    PolicyConfiguration,
    PolicyRequestState,
)

_MODES = [mode.value for mode in InlineExecution]
_DIRECTIVES = {"script": Directive.SCRIPT, "style": Directive.STYLE}


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        prog="cspguard",
        description="cspguard - Content-Security-Policy header builder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview a nonce-based policy
  python -m cspguard preview --default-source "'self'" --script-inline nonce

  # Preview a hash-based policy with two inline scripts
  python -m cspguard preview --script-inline hash --hash script=abc123 --hash script=def456

  # Run the demo application
  python -m cspguard serve --port 8000
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    preview_parser = subparsers.add_parser('preview', help='Print the header for one request')
    preview_parser.add_argument('--default-source', help='default-src source list')
    preview_parser.add_argument('--script-source', help='script-src source list')
    preview_parser.add_argument('--script-inline', choices=_MODES, default='refuse',
                                help='Inline execution mode for scripts')
    preview_parser.add_argument('--style-source', help='style-src source list')
    preview_parser.add_argument('--style-inline', choices=_MODES, default='refuse',
                                help='Inline execution mode for styles')
    preview_parser.add_argument('--report-only', action='store_true',
                                help='Emit Content-Security-Policy-Report-Only')
    preview_parser.add_argument('--report-uri', help='Violation report URI')
    preview_parser.add_argument('--hash', action='append', default=[], metavar='DIRECTIVE=DIGEST',
                                help='Record an inline hash (script=... or style=...)')
    preview_parser.add_argument('--format', choices=['header', 'json'], default='header',
                                help='Output format')

    serve_parser = subparsers.add_parser('serve', help='Run the demo application')
    serve_parser.add_argument('--host', help='Listen host (default from CSP_LISTEN_HOST)')
    serve_parser.add_argument('--port', type=int, help='Listen port (default from CSP_LISTEN_PORT)')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == 'preview':
            return cmd_preview(args)
        elif args.command == 'serve':
            return cmd_serve(args)
    except CSPGuardError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    return 0


def _parse_hash(value):
    name, sep, digest = value.partition('=')
    if not sep or name not in _DIRECTIVES or not digest:
        raise CSPGuardError(f"Invalid --hash {value!r}, expected script=DIGEST or style=DIGEST")
    return _DIRECTIVES[name], digest


def cmd_preview(args):
    """Run both phases for a single simulated request and print the result."""
    setup_logging(log_level='warning', json_format=False)

    config = PolicyConfiguration(
        default_source=args.default_source,
        script_source=args.script_source,
        script_inline_execution=args.script_inline,
        style_source=args.style_source,
        style_inline_execution=args.style_inline,
        report_only=args.report_only,
        report_uri=args.report_uri,
    )
    builder = PolicyBuilder()
    state = PolicyRequestState()
    headers = {}

    builder.prepare(config, state, headers)
    for directive, digest in (_parse_hash(value) for value in args.hash):
        state.add_hash(directive, digest)
    builder.finalize(config, state, headers)

    if args.format == 'json':
        print(json.dumps({'headers': headers, 'nonce': state.nonce}, indent=2))
    elif headers:
        for name, value in headers.items():
            print(f"{name}: {value}")
    else:
        print("(no header emitted)")
    return 0


def cmd_serve(args):
    """Run the demo app under uvicorn."""
    import uvicorn

    from cspguard.config.loader import get_settings

    settings = get_settings()
    uvicorn.run(
        "cspguard.main:app",
        host=args.host or settings.listen_host,
        port=args.port or settings.listen_port,
        log_config=None,
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
