# catalog_ingest/cli.py
import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .monitoring.health import log_notifier
from .pipeline import CatalogPipeline
from .sync.storage import get_document_store
from .utils.error_handler import CatalogIngestError, describe_error


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="catalog-ingest",
        description="Parse catalog documents, score extraction health and sync the records.",
    )
    ap.add_argument("sources", nargs="*", help="Source files or a directory (default: SOURCE_DIR)")
    ap.add_argument("--output-dir", type=Path, help="Where canonical tables are written")
    ap.add_argument("--overrides", type=Path, help="JSON override table (default: packaged table)")
    ap.add_argument("--extension", help="Source file extension to discover, e.g. .pdf or .txt")
    ap.add_argument("--workers", type=int, help="Parallel parse workers")
    ap.add_argument("--timeout", type=float, help="Per-source parse timeout in seconds")
    ap.add_argument("--sync", action="store_true", help="Reconcile results into the document store")
    ap.add_argument("--json", action="store_true", help="Print the batch summary as JSON")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {
        "OUTPUT_DIR": args.output_dir,
        "OVERRIDES_PATH": args.overrides,
        "SOURCE_EXTENSION": args.extension,
        "MAX_PARSE_WORKERS": args.workers,
        "PARSE_TIMEOUT_SECONDS": args.timeout,
    }
    settings = Settings(**{k: v for k, v in overrides.items() if v is not None})

    try:
        store = get_document_store(settings) if args.sync else None
        pipeline = CatalogPipeline(settings, store=store, notifier=log_notifier)
        if not args.sources:
            sources = None
        elif len(args.sources) == 1:
            sources = args.sources[0]
        else:
            sources = args.sources
        batch = pipeline.run(sources)
    except CatalogIngestError as e:
        print(json.dumps(describe_error(e), indent=2), file=sys.stderr)
        return 2

    summary = batch.summary()
    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print(f"\nDone. Sources: {summary['sources']}  Failed: {summary['failed']}  "
              f"Courses: {summary['courses']}  Degree programs: {summary['degree_programs']}  "
              f"Conflicts: {summary['conflicts']}  Alerts: {summary['alerts']}")
        for name, counts in summary["sync"].items():
            print(f"[sync] {name}: updated {counts['updated']}, skipped {counts['skipped']}, "
                  f"deleted {counts['deleted']}, failed {counts['failed']}"
                  + (" (delete sweep suppressed)" if counts["deletes_suppressed"] else ""))
        for failure in summary["failures"]:
            print(f"[failed] {failure['source']}")

    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
