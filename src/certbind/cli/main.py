"""certbind command-line entry point.

Usage::

    certbind -c /etc/certbind/config.yaml
    certbind -c config.yaml --validate-only
    certbind -c config.yaml serve --dev
    certbind -c config.yaml issue -g rg -s site -d www.example.com -d example.com
    certbind -c config.yaml wildcard -g rg -l westeurope -d example.com
    certbind -c config.yaml bind -t 3A0F... --target rg/site/www.example.com
    certbind -c config.yaml status <instance-id>
    python -m certbind -c config.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import NoReturn

log = logging.getLogger(__name__)


def _get_version() -> str:
    from certbind import __version__  # noqa: PLC0415

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certbind",
        description="certbind: ACME certificates for hosted sites",
    )
    parser.add_argument("-c", "--config", required=True, metavar="PATH", help="YAML or JSON config file.")
    parser.add_argument("--debug", action="store_true", help="Verbose logging and full tracebacks.")
    parser.add_argument("--validate-only", action="store_true", help="Check the config and exit.")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {_get_version()}")

    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--dev", action="store_true", help="Run the Flask development server.")

    # issue
    issue_parser = subparsers.add_parser(
        "issue",
        help="Issue a certificate for a site and bind it",
    )
    issue_parser.add_argument("-g", "--resource-group", required=True)
    issue_parser.add_argument("-s", "--site", required=True)
    issue_parser.add_argument(
        "-d",
        "--domain",
        action="append",
        required=True,
        dest="domains",
        help="Host name to include; repeat for several.",
    )
    issue_parser.add_argument("--slot", default="production")
    issue_parser.add_argument(
        "--ip-based",
        action="store_true",
        default=False,
        help="Bind with IP-based SSL instead of SNI.",
    )

    # wildcard
    wildcard_parser = subparsers.add_parser(
        "wildcard",
        help="Issue wildcard certificates for DNS zones",
    )
    wildcard_parser.add_argument("-g", "--resource-group", required=True)
    wildcard_parser.add_argument("-l", "--location", required=True)
    wildcard_parser.add_argument(
        "-d",
        "--domain",
        action="append",
        required=True,
        dest="domains",
        help="Zone apex; repeat for several.",
    )

    # bind
    bind_parser = subparsers.add_parser(
        "bind",
        help="Bind an existing certificate to host names",
    )
    bind_parser.add_argument("-t", "--thumbprint", required=True)
    bind_parser.add_argument(
        "--target",
        action="append",
        required=True,
        dest="targets",
        metavar="RG/SITE/DOMAIN[/SLOT]",
        help="Binding to update; repeat for several.",
    )

    # status
    status_parser = subparsers.add_parser("status", help="Show workflow instances")
    status_parser.add_argument("instance_id", nargs="?", help="Instance to show")
    status_parser.add_argument("--status", dest="status_filter", default=None)
    status_parser.add_argument("--limit", type=int, default=20)

    for p in (issue_parser, wildcard_parser, bind_parser):
        p.add_argument(
            "--no-wait",
            action="store_true",
            default=False,
            help="Print the instance id at once instead of the final status.",
        )

    return parser


def _fail(message: str) -> NoReturn:
    sys.stderr.write(f"certbind: error: {message}\n")
    sys.exit(1)


def _load_config(path: Path, debug: bool):
    """Load the config under a plain stderr logger, then switch to the configured one."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    from certbind.config import CertbindConfig, ConfigValidationError  # noqa: PLC0415
    from certbind.logging import configure_logging  # noqa: PLC0415

    try:
        config = CertbindConfig(config_file=path)
    except ConfigValidationError as exc:
        _fail(str(exc))
    configure_logging(config.settings.logging)
    return config


def _dispatch(config, args: argparse.Namespace) -> int | None:
    if args.command in (None, "serve"):
        from certbind.cli.commands.serve import run_serve  # noqa: PLC0415

        _print_settings_summary(config)
        run_serve(config, dev=getattr(args, "dev", False))
        return None

    from certbind.cli.commands import workflows  # noqa: PLC0415

    handlers = {
        "issue": workflows.run_issue,
        "wildcard": workflows.run_wildcard,
        "bind": workflows.run_bind,
        "status": workflows.run_status,
    }
    return handlers[args.command](config, args)


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, load the config and run the selected command."""
    args = _build_parser().parse_args(argv)

    config_path = Path(args.config)
    if not config_path.is_file():
        _fail(f"configuration file not found: {config_path}")
    config = _load_config(config_path, args.debug)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    try:
        code = _dispatch(config, args)
    except Exception as exc:
        if args.debug:
            raise
        _fail(str(exc))
    if code is not None:
        sys.exit(code)


def _print_settings_summary(config) -> None:
    """Print a short summary of the loaded configuration."""
    s = config.settings
    lines = [
        f"config:     {config.data.get('_source')}",
        f"server:     {s.server.bind}:{s.server.port} ({s.server.workers} worker(s))",
        f"api:        {s.api.base_path or '/'}",
        f"acme:       {s.acme.client}",
        f"dns:        {s.dns.client}",
        f"hosting:    {s.hosting.client}",
        f"store:      {s.workflow.store}",
        f"logging:    {s.logging.level} ({s.logging.format})",
    ]
    sys.stderr.write("\n".join(lines) + "\n")
