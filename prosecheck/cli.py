"""
ProseCheck Command Line
=======================
Usage:
    prosecheck check paper.typ [--host localhost --port 8081] [--json]
    prosecheck watch paper.typ --bundled --on-change 500ms
    prosecheck config paper.typ dictionary.en --set dictionary.en=Typst

``check`` runs one cycle and prints a report (exit status 1 when issues were
found, 2 on errors). ``watch`` polls the project files and re-checks them
through the scheduler until interrupted. ``config`` prints the effective
configuration, or one dot-notation key of it.
"""

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ProseCheckConfig, load_config
from .config_logging import ConfigurationError, ProseCheckError, configure_logging, get_logger
from .base import CheckStatus
from .document.workspace import Workspace
from .presentation import format_report
from .scheduler import CheckScheduler, Event
from .session import CheckReport, CheckSession

__version__ = "1.0.0"

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_ISSUES = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='prosecheck', description='Grammar and spell checking for markup documents')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    sub = parser.add_subparsers(dest='command')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('path', help='Document to check (main file unless --main is given)')
    common.add_argument('--main', help='Main file of the project')
    common.add_argument('--root', help='Project root (default: directory of the main file)')
    common.add_argument('--config', type=str, help='JSON config file (default: prosecheck.json lookup)')
    common.add_argument('--bundled', action='store_true', default=None, help='Use the bundled LanguageTool')
    common.add_argument('--jar', dest='jar_location', help='LanguageTool server JAR')
    common.add_argument('--host', help='Remote LanguageTool host')
    common.add_argument('--port', type=int, help='LanguageTool server port')
    common.add_argument('--language', dest='languages', action='append',
                        help='Preferred language tag, e.g. de-DE (repeatable)')
    common.add_argument('--chunk-size', type=int, help='Maximum characters per request')
    common.add_argument('--no-spellcheck', dest='spellcheck', action='store_false', default=None,
                        help='Check the plain rendering instead of the check-mode view')
    common.add_argument('--log-level', help='DEBUG, INFO, WARNING or ERROR')
    common.add_argument('--log-format', choices=['text', 'json'])
    common.add_argument('--set', dest='assignments', action='append', metavar='KEY=VALUE',
                        help='Set an option by dot-notation key, e.g. dictionary.en=Typst (repeatable)')

    check = sub.add_parser('check', parents=[common], help='Check once and print a report')
    check.add_argument('--json', action='store_true', help='Print the report as JSON')

    watch = sub.add_parser('watch', parents=[common], help='Re-check when files change')
    watch.add_argument('--on-change', help='Debounce for edits, e.g. 300ms (default: check on save)')
    watch.add_argument('--interval', type=float, default=0.5, help='Polling interval in seconds')

    show = sub.add_parser('config', parents=[common], help='Print the effective configuration')
    show.add_argument('key', nargs='?', help='Dot-notation key, e.g. dictionary.en')
    return parser


def options_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Configuration options given on the command line."""
    names = ['main', 'root', 'bundled', 'jar_location', 'host', 'port', 'languages',
             'chunk_size', 'spellcheck', 'log_level', 'log_format', 'on_change']
    return {name: getattr(args, name) for name in names if getattr(args, name, None) is not None}


def load_cli_config(args: argparse.Namespace, cwd: Optional[Path] = None) -> ProseCheckConfig:
    """
    Configuration for a command: file, environment, options, then ``--set``.

    Raises:
        ConfigurationError: Invalid values or a malformed assignment
    """
    config: ProseCheckConfig = load_config(
        Path(args.config) if args.config else None,
        options_from_args(args),
        cwd=cwd,
    )
    for assignment in args.assignments or []:
        key, sep, value = assignment.partition('=')
        if not sep or not key.strip():
            raise ConfigurationError(f"Expected KEY=VALUE, got {assignment!r}", option='set')
        config.set(key.strip(), value)
    if args.assignments:
        config.make_absolute(cwd)
        config.validate()
    return config


def make_session(args: argparse.Namespace, cwd: Optional[Path] = None) -> CheckSession:
    config = load_cli_config(args, cwd)
    configure_logging(config.log_level, config.log_format)
    workspace = Workspace(config.main or args.path, config.root)
    return CheckSession(workspace, config)


def run_config(args: argparse.Namespace) -> int:
    config = load_cli_config(args)
    if not args.key:
        print(json.dumps(config.to_dict(), indent=2))
        return EXIT_OK
    missing = object()
    value = config.get(args.key, missing)
    if value is missing:
        raise ConfigurationError(f"Unknown config key: {args.key}", option=args.key)
    print(json.dumps(value, indent=2))
    return EXIT_OK


def exit_status(report: CheckReport) -> int:
    if report.status == CheckStatus.ERROR:
        return EXIT_ERROR
    return EXIT_ISSUES if report.all_diagnostics else EXIT_OK


def run_check(args: argparse.Namespace) -> int:
    session = make_session(args)
    try:
        report = session.run()
    finally:
        session.close()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(format_report(report, base=session.workspace.root))
    return exit_status(report)


class FilePoller:
    """Detects modified files by polling their modification times."""

    def __init__(self):
        self._mtimes: Dict[str, Optional[float]] = {}

    def watch(self, paths: List[str]):
        for path in paths:
            if path not in self._mtimes:
                self._mtimes[path] = self._mtime(path)

    @staticmethod
    def _mtime(path: str) -> Optional[float]:
        try:
            return Path(path).stat().st_mtime
        except OSError:
            return None

    def changed(self) -> List[str]:
        modified = []
        for path, previous in self._mtimes.items():
            current = self._mtime(path)
            if current != previous:
                self._mtimes[path] = current
                modified.append(path)
        return modified


def run_watch(args: argparse.Namespace) -> int:
    session = make_session(args)
    poller = FilePoller()
    poller.watch([session.workspace.main_id])

    def publish(report: CheckReport):
        poller.watch(list(report.sources))
        print(format_report(report, base=session.workspace.root), flush=True)

    debounce = session.config.on_change
    scheduler = CheckScheduler(session.run, debounce=debounce, on_result=publish)
    scheduler.start()
    scheduler.submit(Event.OPEN)
    try:
        while True:
            time.sleep(args.interval)
            modified = poller.changed()
            if modified:
                logger.debug("Files modified", count=len(modified))
                scheduler.submit(Event.CHANGE if debounce is not None else Event.SAVE)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        session.close()
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return EXIT_ERROR
    try:
        if args.command == 'check':
            return run_check(args)
        if args.command == 'config':
            return run_config(args)
        return run_watch(args)
    except ProseCheckError as e:
        logger.error(e.message, error_code=e.code)
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return EXIT_ERROR


if __name__ == '__main__':
    sys.exit(main())
