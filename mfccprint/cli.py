"""Command-line interface for mfccprint.

Commands:
    contexts        - List contexts
    context-add     - Create (or replace) a context
    context-remove  - Remove a context with all of its audio
    add             - Fingerprint files or directories into a context
    remove          - Remove one audio record
    list            - List audio records
    identify        - Identify an audio clip within a context
    stats           - Show catalog statistics
    export          - Write the catalog to a snapshot file
    import          - Merge a snapshot file into the catalog
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

from clipid.core.config import ClipidConfig, load_config
from clipid.core.errors import ClipidError
from clipid.service import RecognitionService


def cmd_contexts(service: RecognitionService, args: argparse.Namespace) -> int:
    """List contexts with their record counts."""
    contexts = service.list_contexts()
    if not contexts:
        print("No contexts.")
        return 0

    for context in contexts:
        count = len(service.list_audio(context.name))
        directory = f"  [{context.directory}]" if context.directory else ""
        print(f"{context.name:<20} {count:>6} records{directory}")
    return 0


def cmd_context_add(service: RecognitionService, args: argparse.Namespace) -> int:
    service.add_context(args.name, args.directory, replace=args.replace)
    print(f"Context {args.name} {'set' if args.replace else 'created'}.")
    return 0


def cmd_context_remove(service: RecognitionService, args: argparse.Namespace) -> int:
    removed = service.remove_context(args.name)
    print(f"Context {args.name} removed ({removed} records).")
    return 0


def cmd_add(service: RecognitionService, args: argparse.Namespace) -> int:
    """Add files (or every supported file of directories) to a context."""
    start = time.time()
    added = 0
    existing = 0
    errors = 0

    for path in args.paths:
        if path.is_dir():
            summary = service.add_directory(args.context, path, workers=args.workers)
            added += summary.ingested
            existing += len(summary.existing)
            errors += len(summary.failed)
            for failed in summary.failed:
                print(f"  {failed.name}: ERROR", file=sys.stderr)
            continue

        try:
            record, created = service.ingest_audio(args.context, path)
        except ClipidError as e:
            print(f"  {path.name}: ERROR - {e}", file=sys.stderr)
            errors += 1
            continue
        if created:
            print(f"  {record.name}: {record.uuid}")
            added += 1
        else:
            print(f"  {path.name}: already cataloged as {record.uuid}")
            existing += 1

    print()
    print(f"Completed in {time.time() - start:.1f} seconds")
    print(f"  Cataloged: {added}")
    print(f"  Already cataloged: {existing}")
    print(f"  Errors: {errors}")
    return 1 if errors else 0


def cmd_remove(service: RecognitionService, args: argparse.Namespace) -> int:
    record = service.remove_audio(args.uuid)
    print(f"Removed {record.name} ({record.uuid}) from {record.context}.")
    return 0


def cmd_list(service: RecognitionService, args: argparse.Namespace) -> int:
    records = service.list_audio(args.context)
    if not records:
        print("No audio records.")
        return 0

    for record in records:
        print(f"{record.uuid}  {record.context:<16} {record.hash}  {record.name}")
    return 0


def cmd_identify(service: RecognitionService, args: argparse.Namespace) -> int:
    """Identify a single audio clip."""
    if not args.file.exists():
        print(f"Error: File not found: {args.file}", file=sys.stderr)
        return 1

    start = time.time()
    result = service.identify(args.context, args.file, coefs=args.coefs, tolerance=args.tolerance)
    elapsed = time.time() - start

    if args.json:
        print(json.dumps({"found": result.found, **result.to_dict()}))
        return 0

    if not result.found:
        print(f"No match ({result.frame_count} frames, {elapsed:.1f}s).")
        return 0

    record = result.record
    print(f"Match in {elapsed:.1f}s:")
    print(f"  Name:    {record.name}")
    print(f"  UUID:    {record.uuid}")
    print(f"  Context: {record.context}")
    print(f"  Hash:    {record.hash}")
    print(f"  Frames:  {result.match_count}/{result.frame_count}")
    return 0


def cmd_stats(service: RecognitionService, args: argparse.Namespace) -> int:
    """Show catalog statistics."""
    stats = service.get_stats()

    print("mfccprint Catalog Statistics")
    print("=" * 40)
    print(f"Contexts:                   {stats['contexts']:,}")
    print(f"Audio records:              {stats['audio']:,}")
    print(f"Fingerprint frames:         {stats['frames']:,}")
    print(f"Avg frames/record:          {stats['avg_frames_per_audio']:.0f}")
    return 0


def cmd_export(service: RecognitionService, args: argparse.Namespace) -> int:
    count = service.export_snapshot(args.path)
    print(f"Exported {count} records to {args.path}")
    return 0


def cmd_import(service: RecognitionService, args: argparse.Namespace) -> int:
    counts = service.import_snapshot(args.path)
    print(
        f"Imported {counts['audio']} records into {counts['contexts']} contexts "
        f"({counts['skipped']} skipped)"
    )
    return 0


def _load_config(args: argparse.Namespace) -> ClipidConfig:
    if args.config is not None:
        config = load_config(args.config)
    else:
        try:
            config = load_config()
        except FileNotFoundError:
            config = ClipidConfig()

    if args.snapshot is not None:
        config.database.snapshot_path = args.snapshot
    if args.verbose:
        config.logging.level = "DEBUG"
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mfccprint",
        description="Identify audio clips against a catalog of MFCC fingerprints",
    )
    parser.add_argument("--config", "-c", type=Path, help="Path to config file")
    parser.add_argument(
        "--snapshot",
        type=Path,
        help="Catalog snapshot to load at start and save at exit (overrides config)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # contexts command
    contexts_parser = subparsers.add_parser("contexts", help="List contexts")
    contexts_parser.set_defaults(func=cmd_contexts)

    # context-add command
    context_add_parser = subparsers.add_parser("context-add", help="Create a context")
    context_add_parser.add_argument("name", help="Context name")
    context_add_parser.add_argument("--directory", "-d", type=Path, help="Directory hint")
    context_add_parser.add_argument(
        "--replace",
        action="store_true",
        help="Replace the context if it already exists",
    )
    context_add_parser.set_defaults(func=cmd_context_add)

    # context-remove command
    context_remove_parser = subparsers.add_parser(
        "context-remove", help="Remove a context and all of its audio"
    )
    context_remove_parser.add_argument("name", help="Context name")
    context_remove_parser.set_defaults(func=cmd_context_remove)

    # add command
    add_parser = subparsers.add_parser("add", help="Fingerprint audio into a context")
    add_parser.add_argument("context", help="Target context")
    add_parser.add_argument("paths", nargs="+", type=Path, help="Audio files or directories")
    add_parser.add_argument(
        "--workers", "-w",
        type=int,
        help="Parallel workers for directories (default: from config)",
    )
    add_parser.set_defaults(func=cmd_add)

    # remove command
    remove_parser = subparsers.add_parser("remove", help="Remove an audio record")
    remove_parser.add_argument("uuid", help="Audio record uuid")
    remove_parser.set_defaults(func=cmd_remove)

    # list command
    list_parser = subparsers.add_parser("list", help="List audio records")
    list_parser.add_argument("--context", help="Only list this context")
    list_parser.set_defaults(func=cmd_list)

    # identify command
    identify_parser = subparsers.add_parser("identify", help="Identify an audio clip")
    identify_parser.add_argument("context", help="Context to search")
    identify_parser.add_argument("file", type=Path, help="Audio file to identify")
    identify_parser.add_argument(
        "--coefs", "-n",
        type=int,
        help="Leading coefficients compared (default: from config)",
    )
    identify_parser.add_argument(
        "--tolerance", "-t",
        type=float,
        help="Per-coefficient tolerance (default: from config)",
    )
    identify_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    identify_parser.set_defaults(func=cmd_identify)

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show catalog statistics")
    stats_parser.set_defaults(func=cmd_stats)

    # export command
    export_parser = subparsers.add_parser("export", help="Write a catalog snapshot")
    export_parser.add_argument("path", type=Path, help="Output JSON file")
    export_parser.set_defaults(func=cmd_export)

    # import command
    import_parser = subparsers.add_parser("import", help="Merge a catalog snapshot")
    import_parser.add_argument("path", type=Path, help="Snapshot JSON file")
    import_parser.set_defaults(func=cmd_import)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        with RecognitionService(config) as service:
            return args.func(service, args)
    except ClipidError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
