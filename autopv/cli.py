"""
autopv — command-line interface
===============================

Usage
-----
  autopv generate --email user@example.com --github-org my-org
  autopv login --github-token ghp_... --archive-password "..."
  autopv login --show
  autopv cleanup --dir ./evidence --max-age-hours 24

Secrets come from the environment (a .env file in the working directory is
loaded first) and fall back to the encrypted store written by `autopv login`.
"""

from __future__ import annotations

import argparse
import getpass
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from autopv import __version__
from autopv.core.data_types import PipelineState, RunReport
from autopv.core.exceptions import AutoPVError
from autopv.core.logger import StructuredLogger
from autopv.config.pipeline_config import PipelineConfig
from autopv.credentials.store import (
    ARCHIVE_PW,
    GEMINI_API_KEY,
    GITHUB_TOKEN,
    STRIPE_SECRET_KEY,
    CredentialStore,
)
from autopv.packaging.archive import generate_archive_report
from autopv.packaging.cleanup import DEFAULT_MAX_AGE_HOURS, FileCleanup


# ── ANSI colours ──────────────────────────────────────────────────────────────
RESET   = "\033[0m"
BOLD    = "\033[1m"
DIM     = "\033[2m"
RED     = "\033[91m"
GREEN   = "\033[92m"
YELLOW  = "\033[93m"
BLUE    = "\033[94m"


# ── Helpers ───────────────────────────────────────────────────────────────────

def _bar(char: str = "─", width: int = 66) -> str:
    return DIM + char * width + RESET


def _header(text: str) -> None:
    print(f"\n{BOLD}{BLUE}{text}{RESET}")
    print(_bar())


def _badge(label: str, colour: str) -> str:
    return f"{colour}{BOLD}[{label}]{RESET}"


# ── Parser ────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autopv",
        description="Generate GDPR DSAR evidence packs from provider exports.",
    )
    parser.add_argument("--version", action="version", version=f"autopv {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="export, scrub, classify and archive one subject")
    gen.add_argument("-e", "--email", required=True, help="data subject email")
    gen.add_argument("-g", "--github-org", required=True, help="GitHub organisation")
    gen.add_argument("-c", "--config", default=None, help="preset name or YAML path")
    gen.add_argument("-o", "--output-dir", default=None, help="where the archive is written")
    gen.add_argument("-v", "--verbose", action="store_true", help="stream the run log to stderr")

    login = sub.add_parser("login", help="store provider credentials (encrypted)")
    login.add_argument("--github-token", help="GitHub token (repo:read, admin:org scopes)")
    login.add_argument("--stripe-key", help="Stripe secret key (optional)")
    login.add_argument("--gemini-key", help="Gemini API key (for GDPR classification)")
    login.add_argument("--archive-password", help="passphrase for evidence archives")
    login.add_argument("--show", action="store_true", help="show the current (masked) configuration")
    login.add_argument("--reset", action="store_true", help="delete all stored credentials")
    login.add_argument("--store", default=None, help=argparse.SUPPRESS)

    clean = sub.add_parser("cleanup", help="remove old evidence files")
    clean.add_argument("-d", "--dir", default=".", help="directory to sweep")
    clean.add_argument("--max-age-hours", type=float, default=DEFAULT_MAX_AGE_HOURS)
    clean.add_argument("--list", action="store_true", help="only list evidence files")

    return parser


# ── Commands ──────────────────────────────────────────────────────────────────

def cmd_generate(args: argparse.Namespace) -> int:
    from autopv.pipeline.orchestrator import PipelineOrchestrator

    config = PipelineConfig(args.config).with_output_dir(args.output_dir)
    logger = StructuredLogger(name="autopv", console=args.verbose)
    orchestrator = PipelineOrchestrator(
        config=config,
        credentials=CredentialStore().resolve(),
        logger=logger,
    )

    _header(f"autopv {__version__} — DSAR evidence export")
    print(f"  Subject : {args.email}")
    print(f"  Org     : {args.github_org}")
    print(f"  Output  : {os.path.abspath(config.output_dir)}")

    report = orchestrator.run(args.email, scope=args.github_org)
    _print_report(report)
    return 0 if report.state == PipelineState.DONE else 1


def cmd_login(args: argparse.Namespace) -> int:
    store = CredentialStore(path=args.store)

    if args.reset:
        existed = store.reset()
        print(f"{_badge('RESET', YELLOW)} " + ("credentials deleted" if existed else "nothing stored"))
        return 0

    if args.show:
        _header("Stored credentials (environment overrides shown)")
        for key, masked in store.masked().items():
            print(f"  {key:<18} {masked}")
        print(f"\n  {DIM}store: {store.path}{RESET}")
        return 0

    values = {
        GITHUB_TOKEN:      args.github_token,
        STRIPE_SECRET_KEY: args.stripe_key,
        GEMINI_API_KEY:    args.gemini_key,
        ARCHIVE_PW:        args.archive_password,
    }
    if not any(values.values()):
        values = _prompt_missing(store)

    stored = store.update(**values)
    for key in values:
        if values[key]:
            print(f"{_badge('SAVED', GREEN)} {key}")
    print(f"\n  {len(stored)} credential(s) encrypted at {store.path}")
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    cleanup = FileCleanup(args.dir, max_age_hours=args.max_age_hours)

    if args.list:
        files = cleanup.list_evidence_files()
        _header(f"Evidence files in {os.path.abspath(args.dir)}")
        if not files:
            print("  (none)")
        for f in files:
            print(f"  {f['file']:<60} {f['age']:>8} {f['size']:>10}")
        return 0

    result = cleanup.cleanup_old_files()
    print(cleanup.generate_report(result))
    return 1 if result.errors else 0


# ── Output ────────────────────────────────────────────────────────────────────

def _print_report(report: RunReport) -> None:
    _header("Run summary")
    print(f"  States  : {' → '.join(report.transitions)}")

    for skipped in report.skipped:
        print(f"  {_badge('SKIPPED', YELLOW)} {skipped['component']}: {skipped['reason']}")

    if report.dataset is not None:
        for provider, sections in report.dataset.record_counts().items():
            counts = ", ".join(f"{n} {name}" for name, n in sections.items())
            print(f"  {provider:<8}: {counts or 'no records'}")

    if report.scrub_result is not None:
        print(
            f"  Scrub   : {report.scrub_result.items_found} items redacted, "
            f"{report.scrub_result.bytes_reduced} bytes reduced"
        )
    if report.classification is not None:
        s = report.classification.summary
        print(
            f"  GDPR    : {len(report.classification.classifications)}/{s.total_fields} fields, "
            f"articles {', '.join(s.distinct_rule_references) or 'none'}"
        )
    if report.resources:
        r = report.resources
        flag = GREEN + "within" if r.get("within_limit") else RED + "over"
        print(
            f"  Memory  : peak {r.get('peak_memory_mb')} MB "
            f"({flag} {r.get('ceiling_mb'):g} MB{RESET}), {r.get('duration_seconds')} s"
        )

    if report.archive_result is not None:
        print()
        print(generate_archive_report(report.archive_result))

    if report.state == PipelineState.DONE:
        print(f"{_badge('DONE', GREEN)} evidence pack ready for {report.subject}")
    else:
        print(f"{_badge('FAILED', RED)} {report.error}")


def _prompt_missing(store: CredentialStore) -> dict:
    current = store.load()
    prompts = [
        (GITHUB_TOKEN,      "GitHub token (ghp_...)", True),
        (GEMINI_API_KEY,    "Gemini API key", False),
        (STRIPE_SECRET_KEY, "Stripe secret key (Enter to skip)", False),
        (ARCHIVE_PW,        "Archive password", True),
    ]
    values = {}
    for key, label, required in prompts:
        if current.get(key):
            continue
        value = getpass.getpass(f"{label}: ").strip()
        if not value and required:
            print(f"  {_badge('WARN', YELLOW)} {key} left empty; `generate` will fail without it")
        values[key] = value or None
    return values


# ── Entry point ───────────────────────────────────────────────────────────────

_COMMANDS = {
    "generate": cmd_generate,
    "login":    cmd_login,
    "cleanup":  cmd_cleanup,
}


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        return _COMMANDS[args.command](args)
    except AutoPVError as exc:
        print(f"{_badge('ERROR', RED)} {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
