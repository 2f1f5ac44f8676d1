"""Command-line interface for batch payment reconciliation.

Provides subcommands for importing dispatch records, processing a folder
of delivery report images against them, and extracting a single image.
"""

import argparse
import asyncio
import csv
import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dispatch_ocr.batch.jobs import ImageJob, JobState
from dispatch_ocr.batch.orchestrator import BatchOrchestrator, BatchSummary
from dispatch_ocr.errors import DispatchOCRError, StoreError
from dispatch_ocr.models import Dispatch
from dispatch_ocr.ocr.processor import ImageProcessor
from dispatch_ocr.store.sqlite_store import SQLiteDispatchStore
from dispatch_ocr.utils.config import load_config
from dispatch_ocr.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif", "*.bmp", "*.webp")
_CSV_COLUMNS = [
    "filename",
    "state",
    "status",
    "match_confidence",
    "amount_matches",
    "tracking_id",
    "amount",
    "ocr_confidence",
    "dispatch_id",
    "message",
    "error",
]
_TRUE_VALUES = {"1", "true", "yes", "y"}


def _find_images(input_dir: Path) -> list[Path]:
    """Find all supported image files in a directory.

    Args:
        input_dir: Directory to scan for images.

    Returns:
        Sorted list of image file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _job_row(job: ImageJob) -> dict[str, object]:
    row: dict[str, object] = {
        "filename": job.filename,
        "state": job.state.value,
        "error": job.error,
    }
    result = job.result
    if result is not None:
        row.update(
            {
                "status": result.status.value,
                "match_confidence": result.match_confidence.value,
                "amount_matches": result.amount_matches,
                "tracking_id": result.extraction.tracking_id,
                "amount": result.extraction.amount,
                "ocr_confidence": round(result.extraction.confidence, 1),
                "dispatch_id": result.dispatch.id if result.dispatch else None,
                "message": result.message,
            }
        )
    return row


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write per-job results to a CSV file.

    Args:
        rows: One dictionary per job.
        output_path: Path for the output CSV file.
    """
    if not rows:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: BatchSummary, output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Payment Reconciliation Complete")
    print(f"{'=' * 50}")
    print(f"Images:        {summary.total}")
    print(f"Processed:     {summary.total_processed}")
    print(f"Errors:        {summary.errors}")
    print(f"Auto-applied:  {summary.auto_applied}")
    print(f"Needs review:  {summary.needs_review}")
    print(f"  high conf.:  {summary.high_confidence_needs_review}")
    print(f"No match:      {summary.no_match}")
    print(f"Output:        {output_csv}")


def process_folder(
    input_dir: Path,
    output_csv: Path,
    db_path: str | None = None,
    confirm_high: bool = False,
    verbose: bool = False,
) -> BatchSummary:
    """Reconcile every image in a folder against the dispatch database.

    Args:
        input_dir: Directory containing report images.
        output_csv: Path for the per-image results CSV.
        db_path: Dispatch database; defaults to the configured one.
        confirm_high: Also confirm high-confidence items left for review.
        verbose: Whether to print per-file progress.

    Returns:
        Batch summary counts.
    """
    config = load_config()
    store = SQLiteDispatchStore(db_path or config.store.db_path)
    store.init_db()
    orchestrator = BatchOrchestrator.from_config(config, store)

    files = _find_images(input_dir)
    if not files:
        logger.warning("No images found in %s", input_dir)

    _, rejected = orchestrator.add_images((p.name, p.read_bytes(), None) for p in files)
    for message in rejected:
        print(f"Skipped {message}", file=sys.stderr)

    if verbose:
        total = len(orchestrator.jobs)

        def _progress(event) -> None:
            if event.state == JobState.PROCESSING:
                position = orchestrator.jobs.index(event.job) + 1
                print(f"Processing [{position}/{total}]: {event.job.filename}")

        orchestrator.subscribe(_progress)

    asyncio.run(orchestrator.process_pending())

    if confirm_high:
        report = asyncio.run(orchestrator.confirm_all_high_confidence())
        print(f"Confirmed {report.success_count} high-confidence payment(s)")
        for job_id in report.failed:
            print(f"Failed to confirm {orchestrator.get(job_id).filename}", file=sys.stderr)

    _write_csv([_job_row(j) for j in orchestrator.jobs], output_csv)
    logger.info("Results written to %s", output_csv)

    summary = orchestrator.summary()
    _print_summary(summary, output_csv)
    return summary


def import_dispatches(csv_path: Path, db_path: str | None = None) -> int:
    """Load dispatch records from a CSV file into the database.

    The CSV needs ``id``, ``tracking_id`` and ``amount`` columns and may
    have a ``payment_received`` column.

    Returns:
        Number of dispatches imported.

    Raises:
        ValueError: If a row is malformed or repeats an id.
        StoreError: If an id already exists in the database.
    """
    config = load_config()
    store = SQLiteDispatchStore(db_path or config.store.db_path)
    store.init_db()

    dispatches: list[Dispatch] = []
    seen: dict[str, int] = {}
    with open(csv_path, newline="") as f:
        for line_no, row in enumerate(csv.DictReader(f), start=2):
            try:
                dispatch = Dispatch(
                    id=row["id"].strip(),
                    tracking_id=row["tracking_id"].strip().upper(),
                    amount=Decimal(row["amount"].strip()),
                    payment_received=(
                        row.get("payment_received") or ""
                    ).strip().lower() in _TRUE_VALUES,
                )
            except (KeyError, AttributeError, InvalidOperation) as exc:
                raise ValueError(f"{csv_path}:{line_no}: invalid dispatch row") from exc
            if dispatch.id in seen:
                raise ValueError(
                    f"{csv_path}:{line_no}: duplicate dispatch id {dispatch.id} "
                    f"(first seen on line {seen[dispatch.id]})"
                )
            seen[dispatch.id] = line_no
            dispatches.append(dispatch)

    # One transaction: a clash with an existing record imports nothing.
    try:
        count = store.add_many(dispatches)
    except StoreError as exc:
        raise StoreError(f"{csv_path}: {exc}") from exc

    logger.info("Imported %d dispatches into %s", count, store.db_path)
    return count


def extract_single(file_path: Path) -> dict[str, object]:
    """Recognize a single image and return its extracted fields.

    Args:
        file_path: Path to the image file.

    Returns:
        Dictionary with filename, tracking ID, amount, confidence, and raw text.
    """
    config = load_config()
    processor = ImageProcessor.from_config(config)
    result = processor.extract(file_path.read_bytes())
    return {
        "filename": file_path.name,
        "tracking_id": result.tracking_id,
        "amount": float(result.amount) if result.amount is not None else None,
        "confidence": result.confidence,
        "raw_text": result.raw_text,
    }


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Dispatch payment OCR reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = subparsers.add_parser(
        "process", help="Reconcile a folder of report images"
    )
    process_parser.add_argument("input_dir", type=Path, help="Directory with images")
    process_parser.add_argument("--db", help="Dispatch database path")
    process_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    process_parser.add_argument(
        "--confirm-high",
        action="store_true",
        help="Confirm high-confidence matches left for review",
    )
    process_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    import_parser = subparsers.add_parser(
        "import", help="Import dispatch records from CSV"
    )
    import_parser.add_argument("csv_file", type=Path, help="CSV of dispatches")
    import_parser.add_argument("--db", help="Dispatch database path")

    single_parser = subparsers.add_parser("extract", help="Extract a single image")
    single_parser.add_argument("file", type=Path, help="Image file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    args = parser.parse_args(argv)

    setup_logging(load_config().log_level)

    try:
        if args.command == "process":
            if not args.input_dir.is_dir():
                print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
                sys.exit(1)
            process_folder(
                args.input_dir, args.output, args.db, args.confirm_high, args.verbose
            )
        elif args.command == "import":
            if not args.csv_file.exists():
                print(f"Error: {args.csv_file} does not exist", file=sys.stderr)
                sys.exit(1)
            count = import_dispatches(args.csv_file, args.db)
            print(f"Imported {count} dispatch(es)")
        elif args.command == "extract":
            if not args.file.exists():
                print(f"Error: {args.file} does not exist", file=sys.stderr)
                sys.exit(1)
            output_str = json.dumps(extract_single(args.file), indent=2)
            if args.output:
                args.output.parent.mkdir(parents=True, exist_ok=True)
                args.output.write_text(output_str)
                print(f"Output written to {args.output}")
            else:
                print(output_str)
        else:
            parser.print_help()
            sys.exit(0)
    except (DispatchOCRError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
