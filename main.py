"""
Leaf certificate issuer: CLI entry point.

Usage:
  python main.py -f host.example.com                      # CN + SAN host.example.com
  python main.py -f host.example.com -s a.example.com,b   # extra SANs, in order
  python main.py -f host.example.com -e admin@example.com # add emailAddress to subject
  python main.py host.example.com a.example.com,b         # positional form

Writes <fqdn>.key.pem and <fqdn>.crt.pem to CERT_OUTPUT_DIR.  Exit code 0 on
success, 1 on any failure.
"""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import NoReturn

import structlog
from pydantic import ValidationError

log = logging.getLogger(__name__)


# ── Logging setup ─────────────────────────────────────────────────────────────


def setup_logging(level: str = "INFO") -> None:
    """Route stdlib logging through structlog's console renderer on stderr."""
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            ],
        )
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)


def _terminate(signum: int, frame: object) -> NoReturn:
    # SystemExit unwinds through ArtifactGuard, which removes partial files
    raise SystemExit(1)


# ── CLI ───────────────────────────────────────────────────────────────────────


class _ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with status 1, like every other failure."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="issue-cert",
        description="Issue a leaf TLS certificate signed by a local CA",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        epilog="""
Examples:
  issue-cert -f uyuni.example.com
  issue-cert -f uyuni.example.com -s www.example.com,api.example.com
  issue-cert -f uyuni.example.com -e admin@example.com --backend openssl
  issue-cert uyuni.example.com www.example.com
        """,
    )
    parser.add_argument("-f", "--fqdn", help="Common Name and first SAN of the new certificate")
    parser.add_argument("-s", "--sans", metavar="SAN1,SAN2", help="Additional DNS names, comma-separated")
    parser.add_argument("-e", "--email", help="emailAddress to add to the certificate subject")
    parser.add_argument("-h", "--help", action="store_true", help="Show this help and exit")
    parser.add_argument("positional_fqdn", nargs="?", metavar="FQDN", help=argparse.SUPPRESS)
    parser.add_argument("positional_sans", nargs="?", metavar="SANS", help=argparse.SUPPRESS)

    overrides = parser.add_argument_group("settings overrides")
    overrides.add_argument("--ca-cert", metavar="PATH", help="CA certificate (CA_CERT_PATH)")
    overrides.add_argument("--ca-key", metavar="PATH", help="CA private key (CA_KEY_PATH)")
    overrides.add_argument("--output-dir", metavar="DIR", help="Where to write the files (CERT_OUTPUT_DIR)")
    overrides.add_argument("--backend", choices=["cryptography", "openssl"], help="ISSUER_BACKEND")
    overrides.add_argument("--profile", choices=["extended", "basic"], help="EXTENSION_PROFILE")
    overrides.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _settings_overrides(args: argparse.Namespace) -> dict:
    mapping = {
        "CA_CERT_PATH": args.ca_cert,
        "CA_KEY_PATH": args.ca_key,
        "CERT_OUTPUT_DIR": args.output_dir,
        "ISSUER_BACKEND": args.backend,
        "EXTENSION_PROFILE": args.profile,
    }
    if args.verbose:
        mapping["LOG_LEVEL"] = "DEBUG"
    return {k: v for k, v in mapping.items() if v is not None}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.help:
        parser.print_help(sys.stderr)
        return 1

    try:
        from config import settings as base_settings
    except ValidationError as exc:
        setup_logging()
        log.error("Invalid configuration: %s", exc)
        return 1
    settings = base_settings.model_copy(update=_settings_overrides(args))
    setup_logging(settings.LOG_LEVEL)

    fqdn = args.fqdn or args.positional_fqdn
    if not fqdn:
        log.error("No FQDN provided.")
        parser.print_usage(sys.stderr)
        return 1

    from issuer.errors import IssuanceError
    from issuer.extensions import parse_san_argument
    from issuer.pipeline import IssueRequest, issue_certificate

    request = IssueRequest(
        fqdn=fqdn,
        sans=parse_san_argument(args.sans if args.sans is not None else args.positional_sans),
        email=args.email,
    )

    previous_handler = signal.signal(signal.SIGTERM, _terminate)
    try:
        result = issue_certificate(request, settings)
    except IssuanceError as exc:
        log.error("%s error: %s", exc.category, exc)
        return exc.exit_code
    except OSError as exc:
        log.error("Certificate generation failed: %s", exc)
        return 1
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    log.info("Success! Certificate valid for %d days.", result.validity_days)
    print(f"  Private Key:  {result.key_path}")
    print(f"  Certificate:  {result.cert_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
