"""
collabcore CLI — Database bootstrap and history inspection.

Commands:
- collabcore init      — Create the document and audit-log tables
- collabcore show      — Print a document's current state
- collabcore history   — Print one page of a document's audit history
- collabcore sessions  — Print the editing sessions reconstructed from history
- collabcore check     — Verify the database is reachable
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional

from collabcore.documents.diff import preview_value
from collabcore.engine.errors import CollabError


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="collabcore",
        description="collabcore — versioned document writes and audit history",
    )
    parser.add_argument(
        "--config", default=None, help="Path to collabcore.yaml (default: auto-discover)"
    )
    parser.add_argument("--db-url", help="Override database.url from the config")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # collabcore init
    subparsers.add_parser("init", help="Create database tables")

    # collabcore show
    show_parser = subparsers.add_parser("show", help="Show a document's current state")
    show_parser.add_argument("document_id", help="Document id")

    # collabcore history
    history_parser = subparsers.add_parser("history", help="Show audit history (newest first)")
    history_parser.add_argument("document_id", help="Document id")
    history_parser.add_argument("--limit", type=int, help="Page size (default: history.default_page_size)")
    history_parser.add_argument("--cursor", help="change_id of the last entry already seen")

    # collabcore sessions
    sessions_parser = subparsers.add_parser("sessions", help="Show reconstructed editing sessions")
    sessions_parser.add_argument("document_id", help="Document id")
    sessions_parser.add_argument("--limit", type=int, help="History page size")
    sessions_parser.add_argument("--cursor", help="change_id of the last entry already seen")
    sessions_parser.add_argument(
        "--oldest-first", action="store_true", help="Display oldest session first"
    )
    sessions_parser.add_argument(
        "--gap-minutes", type=float, help="Session gap threshold (default: sessions.gap_minutes)"
    )

    # collabcore check
    subparsers.add_parser("check", help="Verify the database is reachable")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "init":
            return cmd_init(args)
        elif args.command == "show":
            return cmd_show(args)
        elif args.command == "history":
            return cmd_history(args)
        elif args.command == "sessions":
            return cmd_sessions(args)
        elif args.command == "check":
            return cmd_check(args)
    except CollabError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1
    finally:
        _shutdown()

    parser.print_help()
    return 0


def _load(args: argparse.Namespace, create_tables: bool = False):
    """Load config and open the SQL store. Returns (config, service)."""
    from collabcore.db.session import init_db
    from collabcore.documents.identity import HttpIdentityResolver
    from collabcore.documents.service import DocumentService
    from collabcore.documents.sql_store import SqlDocumentStore
    from collabcore.engine.config import load_config
    from collabcore.engine.logging import init_logging, log, log_system_event

    config = load_config(args.config)
    logging.basicConfig(level=config.logging.level)
    if config.logging.structured:
        queue_cfg = config.logging.async_queue
        init_logging(
            log_dir=config.logging.directory,
            flush_interval_ms=queue_cfg.flush_interval_ms,
            flush_batch_size=queue_cfg.flush_batch_size,
            max_queue_size=queue_cfg.max_queue_size,
        )
        log(log_system_event("cli_command", details={"command": args.command}))

    db = config.database
    factory = init_db(
        args.db_url or db.url,
        create_tables=create_tables or db.create_tables,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        pool_pre_ping=db.pool_pre_ping,
    )

    resolver = None
    if config.identity.base_url:
        resolver = HttpIdentityResolver(
            config.identity.base_url,
            timeout=config.identity.timeout_seconds,
            api_token=config.identity.api_token,
        )

    service = DocumentService.from_config(SqlDocumentStore(factory), config, identity_resolver=resolver)
    return config, service


def _shutdown() -> None:
    from collabcore.db.session import close_all_sessions
    from collabcore.engine.logging import shutdown_logging

    shutdown_logging()
    close_all_sessions()


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_init(args: argparse.Namespace) -> int:
    """Create the collab_documents and collab_audit_log tables."""
    _load(args, create_tables=True)
    print("[OK] Database tables created")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    _, service = _load(args)
    doc = service.get_document(args.document_id)
    _print_json(doc.model_dump(mode="json"))
    return 0


def _history_row(entry: Any, preview_chars: int) -> Dict[str, Any]:
    """Audit record with long field values shortened for the terminal."""
    record = entry.to_record()
    record["field_changes"] = [
        {
            key: preview_value(value, limit=preview_chars) if key != "field" else value
            for key, value in change.items()
        }
        for change in record["field_changes"]
    ]
    return record


def cmd_history(args: argparse.Namespace) -> int:
    config, service = _load(args)
    entries = service.read_history(args.document_id, limit=args.limit, cursor=args.cursor)
    _print_json([_history_row(entry, config.audit.preview_chars) for entry in entries])
    return 0


def cmd_sessions(args: argparse.Namespace) -> int:
    _, service = _load(args)
    sessions = service.read_sessions(
        args.document_id,
        limit=args.limit,
        cursor=args.cursor,
        oldest_first=args.oldest_first,
        gap_minutes=args.gap_minutes,
    )
    _print_json([
        {
            **s.model_dump(mode="json", exclude={"changed_fields"}),
            "changed_fields": sorted(s.changed_fields),
            "display_name": s.display_name,
        }
        for s in sessions
    ])
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Connect to the configured database and run SELECT 1."""
    from collabcore.db.base import engine_registry
    from collabcore.db.session import CORE_ENGINE

    _load(args)
    if engine_registry.health_check(CORE_ENGINE):
        print("[OK] Database reachable")
        return 0
    print("[ERROR] Database unreachable", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
