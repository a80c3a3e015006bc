"""
lifevault/cli.py
Command-line interface for LifeVault.

USAGE:
  lifevault serve [--host 127.0.0.1] [--port 8787] [--local]
  lifevault summary --email me@example.com --password ...
  lifevault export-activity --email me@example.com --password ... --format json --days 90

EXAMPLES:
  # Offline server on the SQLite backend
  lifevault serve --local

  # Last 30 days of contact activity as CSV
  lifevault export-activity --email me@example.com --password secret --category contact
"""

import argparse
import logging
import sys
from pathlib import Path

from lifevault import __version__
from lifevault.activity.analytics import DEFAULT_RANGE, TIME_RANGES
from lifevault.activity.export import EXPORT_FORMATS
from lifevault.config import ensure_config
from lifevault.errors import LifeVaultError
from lifevault.models.record import ACTIVITY_CATEGORIES

logger = logging.getLogger(__name__)

GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'lifevault',
        description = 'LifeVault: personal document vault, trusted contacts and emergency profile',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    parser.add_argument(
        '--config-dir',
        type    = Path,
        default = None,
        help    = 'Directory holding lifevault_config.json (default: current directory)',
    )
    sub = parser.add_subparsers(dest='command', required=True)

    serve = sub.add_parser('serve', help='Run the HTTP API')
    serve.add_argument('--host', default=None, help='Host to bind (default from config: 127.0.0.1)')
    serve.add_argument('--port', type=int, default=None, help='Port to bind (default from config: 8787)')
    serve.add_argument('--local', action='store_true', help='Force the on-device SQLite backend')

    for name, help_text in (
        ('summary',         'Print vault counts and activity analytics'),
        ('export-activity', 'Write the activity timeline to CSV or JSON'),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument('--email',    required=True)
        p.add_argument('--password', required=True)
        p.add_argument('--local',    action='store_true', help='Force the on-device SQLite backend')

    export = sub.choices['export-activity']
    export.add_argument('--format', choices=EXPORT_FORMATS, default='csv')
    export.add_argument(
        '--days',
        type    = int,
        default = DEFAULT_RANGE,
        help    = f"Time range in days (UI offers {', '.join(map(str, TIME_RANGES))})",
    )
    export.add_argument('--category', choices=('all',) + ACTIVITY_CATEGORIES, default='all')
    export.add_argument('--output', '-o', type=Path, default=None, help='Output file (default: activity-log-<date>.<fmt>)')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level   = log_level,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    config = ensure_config(args.config_dir)
    if getattr(args, 'local', False):
        config['backend'] = 'local'

    try:
        if args.command == 'serve':
            return _serve(args, config)
        if args.command == 'summary':
            return _summary(args, config)
        if args.command == 'export-activity':
            return _export(args, config)
    except LifeVaultError as e:
        _print(f"{RED}Error: {e}{RESET}")
        logger.debug("Command failed", exc_info=True)
        return 1
    return 0


# ── COMMANDS ─────────────────────────────────────────────────

def _serve(args, config) -> int:
    import uvicorn

    from lifevault.api import _build_app

    host = args.host or config['host']
    port = args.port or int(config['port'])
    _print(f"""
{BOLD}{CYAN}LifeVault API Server v{__version__}{RESET}
  Local:    http://{host}:{port}
  Backend:  {config['backend']}
  Docs:     http://{host}:{port}/docs
""")
    uvicorn.run(_build_app(config), host=host, port=port, log_level='info')
    return 0


def _signed_in_api(args, config):
    from lifevault.api import LifeVaultAPI

    api = LifeVaultAPI.from_config(config)
    session = api.sign_in(args.email, args.password)
    return api, session['access_token']


def _summary(args, config) -> int:
    api, token = _signed_in_api(args, config)
    vault    = api.vault_summary(token)
    overview = api.activity_overview(token)
    stats    = overview['analytics']

    _print(f"\n{BOLD}Vault{RESET}")
    for category, count in vault['counts'].items():
        _print(f"  {category:<10}: {count}")
    _print(f"  {'total':<10}: {vault['total']}")

    _print(f"\n{BOLD}Activity{RESET}")
    _print(f"  Total updates : {stats['total_updates']}")
    _print(f"  This month    : {stats['this_month']}")
    _print(f"  Weekly trend  : {' '.join(str(n) for n in stats['weekly_trend'])}  (oldest → newest)")
    for category, count in stats['category_breakdown'].items():
        if count:
            _print(f"    {category:<10}: {count}")
    _print("")
    return 0


def _export(args, config) -> int:
    api, token = _signed_in_api(args, config)
    name, body, _ = api.export_activity(token, args.format, args.category, args.days)
    output = args.output or Path(name)
    output.write_text(body, encoding='utf-8')
    _print(f"  {GREEN}✓{RESET} Activity exported → {output.resolve()}")
    return 0


def _print(msg): print(msg)


if __name__ == '__main__':
    sys.exit(main())
