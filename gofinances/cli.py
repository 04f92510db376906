"""CLI entry point for gofinances.

Commands:
    gofinances import [--file PATH]   Import specific file or all pending
    gofinances watch                  Start file watcher daemon
    gofinances status                 Transaction/category counts and balance
    gofinances category list          Print categories with totals
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

logger = logging.getLogger(__name__)

_DEFAULT_MIGRATIONS_DIR = Path(__file__).parent / "database" / "migrations"


def _setup_logging() -> None:
    """Configure logging based on GOFINANCES_LOG_LEVEL env var."""
    level = os.environ.get("GOFINANCES_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load application config from config directory."""
    from gofinances.config import Config

    config_dir = os.environ.get("GOFINANCES_CONFIG_DIR", "config")
    return Config(config_dir=config_dir)


def _get_repo():
    """Create a Repository connected to the configured database."""
    from gofinances.database.repository import Repository

    db_path = os.environ.get("GOFINANCES_DB_PATH", "gofinances.db")
    return Repository(db_path=db_path)


def _get_watch_dir() -> Path:
    """Get the watch directory from env or default."""
    return Path(os.environ.get("GOFINANCES_WATCH_DIR", "import"))


def _get_migrations_dir() -> Path:
    """Get the migrations directory path."""
    return Path(os.environ.get(
        "GOFINANCES_MIGRATIONS_DIR", str(_DEFAULT_MIGRATIONS_DIR),
    ))


def _print_result(result, indent: str = "") -> None:
    if result.status == "error":
        stage = f" [{result.error_stage}]" if result.error_stage else ""
        print(f"{indent}{result.file_name}: error{stage} {result.error_message}")
        return
    print(
        f"{indent}{result.file_name}: {result.status}"
        f" (imported={result.imported_count}, skipped={result.skipped_count},"
        f" new categories={result.new_category_count})"
    )
    for warning in result.warnings:
        print(f"{indent}  warning: {warning}")


# ── Command handlers ─────────────────────────────────────


def cmd_import(args: argparse.Namespace) -> int:
    """Import transaction file(s) via the ImportPipeline."""
    from gofinances.importer.service import ImportTransactionsService
    from gofinances.watcher.observer import ImportPipeline, SUPPORTED_EXTENSIONS

    config = _get_config()
    repo = _get_repo()
    try:
        repo.apply_migrations(_get_migrations_dir())
        pipeline = ImportPipeline(ImportTransactionsService.from_config(repo, config))

        if args.file:
            filepath = args.file.resolve()
            if not filepath.exists():
                print(f"Error: File not found: {filepath}")
                return 1
            if filepath.suffix.lower() not in SUPPORTED_EXTENSIONS:
                print(f"Error: Unsupported file type: {filepath.suffix}")
                return 1

            result = pipeline.process_file(filepath)
            _print_result(result)
            return 0 if result.status != "error" else 1

        # Batch: process all supported files in watch dir
        watch_dir = _get_watch_dir()
        if not watch_dir.exists():
            print(f"Watch directory not found: {watch_dir}")
            return 1

        files = [
            f for f in sorted(watch_dir.iterdir())
            if f.is_file() and f.suffix.lower() in SUPPORTED_EXTENSIONS
        ]
        if not files:
            print("No pending files found.")
            return 0

        total_imported = 0
        errors = 0
        for filepath in files:
            result = pipeline.process_file(filepath)
            _print_result(result, indent="  ")
            total_imported += result.imported_count
            if result.status == "error":
                errors += 1

        print(f"\nProcessed {len(files)} files: {total_imported} transactions, {errors} errors")
        return 1 if errors else 0
    finally:
        repo.close()


def cmd_watch(args: argparse.Namespace) -> int:
    """Start the file watcher daemon."""
    from gofinances.importer.service import ImportTransactionsService
    from gofinances.watcher.observer import FolderWatcher, ImportPipeline

    config = _get_config()
    repo = _get_repo()
    try:
        repo.apply_migrations(_get_migrations_dir())
        pipeline = ImportPipeline(ImportTransactionsService.from_config(repo, config))

        watcher = FolderWatcher(
            watch_dir=_get_watch_dir(),
            pipeline=pipeline,
            settle_seconds=config.settle_seconds,
            poll_interval=config.poll_interval,
        )

        print(f"Watching {watcher.watch_dir} for transaction files... (Ctrl+C to stop)")
        watcher.start()

        try:
            while True:
                watcher.run_pending()
                time.sleep(1)
        except KeyboardInterrupt:
            print("\nStopping watcher...")
        finally:
            watcher.stop()
    finally:
        repo.close()

    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Display counts and the income/outcome balance."""
    from gofinances.database.queries import get_balance, get_status_counts

    repo = _get_repo()
    try:
        repo.apply_migrations(_get_migrations_dir())
        counts = get_status_counts(repo.conn)
        balance = get_balance(repo.conn)
    finally:
        repo.close()

    print("gofinances Status")
    print("=" * 40)
    print(f"  Total transactions:  {counts['total_txns']:,}")
    print(f"  Uncategorized:       {counts['uncategorized']:,}")
    print(f"  Categories:          {counts['total_categories']:,}")
    print(f"\n  Income:   {balance['income']:>14,.2f}")
    print(f"  Outcome:  {balance['outcome']:>14,.2f}")
    print(f"  Total:    {balance['total']:>14,.2f}")

    return 0


def cmd_category(args: argparse.Namespace) -> int:
    """Dispatch category subcommands."""
    from gofinances.database.queries import get_category_summary

    sub = args.category_command
    if sub != "list":
        print("Usage: gofinances category list")
        return 1

    repo = _get_repo()
    try:
        repo.apply_migrations(_get_migrations_dir())
        rows = get_category_summary(repo.conn)
    finally:
        repo.close()

    if not rows:
        print("No categories.")
        return 0

    for r in rows:
        title = r["title"] or "(blank)"
        print(
            f"  {title:<30}  {r['count']:>5}"
            f"  +{r['income']:>12,.2f}  -{r['outcome']:>12,.2f}"
        )
    return 0


_COMMANDS = {
    "import": cmd_import,
    "watch": cmd_watch,
    "status": cmd_status,
    "category": cmd_category,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="gofinances",
        description="gofinances transaction importer",
    )
    subparsers = parser.add_subparsers(dest="command")

    # import
    import_p = subparsers.add_parser("import", help="Import transaction file(s)")
    import_p.add_argument("--file", type=Path, help="Specific file to import")

    # watch
    subparsers.add_parser("watch", help="Start file watcher daemon")

    # status
    subparsers.add_parser("status", help="Show counts and balance")

    # category
    cat_p = subparsers.add_parser("category", help="Inspect categories")
    cat_sub = cat_p.add_subparsers(dest="category_command")
    cat_sub.add_parser("list", help="Print categories with totals")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
