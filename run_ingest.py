#!/usr/bin/env python3
# run_ingest.py
# Operator CLI for the ingestion pipeline
# =======================================

"""
Usage:
    python run_ingest.py --seed-sources               # load the seed catalog
    python run_ingest.py --list-sources               # show configured sources
    python run_ingest.py --source 3 --limit 100       # ingest one source
    python run_ingest.py --all --per-source-limit 25  # ingest every allowed source
    python run_ingest.py --all --job                  # same, tracked as a Job
    python run_ingest.py --block https://site.com/x   # block a canonical URL
"""

import argparse
import json
import os
import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gridiron ingestion pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--source", type=int, help="Ingest a single source by id")
    target.add_argument("--all", action="store_true", help="Ingest every allowed source")
    parser.add_argument("--limit", type=int, default=None, help="Candidate limit for --source")
    parser.add_argument(
        "--per-source-limit", type=int, default=None, help="Candidate limit per source for --all"
    )
    parser.add_argument("--job", action="store_true", help="Track the run as a Job record")
    parser.add_argument("--list-sources", action="store_true", help="List sources and exit")
    parser.add_argument("--seed-sources", action="store_true", help="Insert the seed catalog")
    parser.add_argument("--block", metavar="URL", help="Block a URL by its canonical form")
    parser.add_argument("--reclassify", action="store_true", help="Re-run the topic classifier")
    parser.add_argument("--backfill-images", action="store_true", help="Look up missing images")
    parser.add_argument("--json", action="store_true", help="Print the run summary as JSON")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings and errors")
    return parser


def print_summary(summary, as_json: bool) -> None:
    if as_json:
        print(json.dumps(summary.to_dict(), indent=2, default=str))
        return
    print(f"state={summary.state} job={summary.job_id or '-'}")
    print("  " + summary.describe())
    if summary.fetch_error:
        print(f"  fetch error: {summary.fetch_error}")
    for source in summary.sources:
        print(f"  source {source.source_id}: {source.describe()}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.quiet:
        os.environ["GRIDIRON__LOGGING__LEVEL"] = "WARNING"

    from main import create_system
    from src.errors import IngestError

    system = create_system()
    try:
        if args.seed_sources:
            print(f"{system.seed_sources()} sources seeded")
        if args.block:
            added = system.block_url(args.block, reason="cli")
            print("blocked" if added else "already blocked")
        if args.list_sources:
            for source in system.list_sources():
                flag = "allowed" if source.allowed else "denied"
                print(f"{source.id:>4}  {source.fetch_mode:<8} {flag:<8} {source.name}")
        if args.source is not None:
            print_summary(system.run_source(args.source, args.limit, with_job=args.job), args.json)
        elif args.all:
            print_summary(system.run_all(args.per_source_limit, with_job=args.job), args.json)
        if args.reclassify:
            print(f"{system.reclassify()} articles reclassified")
        if args.backfill_images:
            result = system.backfill_images()
            print(f"images: checked={result.checked} found={result.found}")
    except IngestError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return 1
    finally:
        system.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
