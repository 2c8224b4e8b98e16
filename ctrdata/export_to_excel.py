"""Main export entrypoint: REDCap API -> Transform -> Excel.

Usage:
    python -m ctrdata.export_to_excel --output ctr.xlsx
    python -m ctrdata.export_to_excel --start-date 2024-01-01 --end-date 2024-03-31 --output q1.xlsx
    python -m ctrdata.export_to_excel --mode groups --split-dir "~/Box/DMAC/Data Anonymized"
"""

import argparse
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import pandas as pd
from dotenv import load_dotenv

from ctrdata.clients import RedcapClient
from ctrdata.config import ConfigurationError, RedcapConfig
from ctrdata.exports import (
    export_records_between,
    export_records_between_label,
    export_records_between_with_groups,
)
from ctrdata.transform.patterns import DATE_SURVEY_FIELD
from ctrdata.utils import RunLogger, setup_logging, split_save, temp_uploader, timed_operation

logger = logging.getLogger(__name__)

EXPORT_MODES = {
    "raw": export_records_between,
    "groups": export_records_between_with_groups,
    "label": export_records_between_label,
}


def save_by_month(data: pd.DataFrame, split_dir: str, run_logger: RunLogger) -> list[dict]:
    """Write one data_anon.xlsx per survey month below ``split_dir``."""
    months = pd.to_datetime(data[DATE_SURVEY_FIELD]).dt.strftime("%Y/%m")
    written = []

    for month, chunk in data.assign(year_mon=months).groupby("year_mon", dropna=True):
        metadata = split_save(chunk, path=split_dir, month_var="year_mon")
        run_logger.log_file_write(metadata["file_path"], metadata["record_count"], metadata["file_size_bytes"])
        written.append(metadata)

    undated = int(months.isna().sum())
    if undated:
        logger.warning(f"{undated} records without date_survey were not saved", extra={"undated_count": undated})

    return written


def run_export(
    client: RedcapClient,
    mode: str = "raw",
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    output: Optional[str] = None,
    split_dir: Optional[str] = None,
    run_id: Optional[str] = None,
) -> dict:
    """Run one export and save the result.

    Args:
        client: REDCap client
        mode: "raw", "groups" or "label"
        start_date: Inclusive start, "yyyy-mm-dd"
        end_date: Inclusive end, "yyyy-mm-dd"
        output: Workbook to write the whole export to
        split_dir: Folder receiving one workbook per month
        run_id: Optional run ID (auto-generated if not provided)

    Returns:
        Run summary
    """
    if run_id is None:
        run_id = uuid.uuid4().hex[:12]

    source = urlparse(client.base_url).hostname or "redcap"
    run_logger = RunLogger(source=source, run_id=run_id)
    start_time = datetime.now(timezone.utc)

    summary = {
        "run_id": run_id,
        "mode": mode,
        "start_date": start_date,
        "end_date": end_date,
        "started_at": start_time.isoformat(),
    }

    try:
        run_logger.start("export")
        with timed_operation("export", logger) as timer:
            if mode == "label":
                if start_date is None or end_date is None:
                    raise ValueError("Label exports require --start-date and --end-date")
                data = export_records_between_label(client, start_date=start_date, end_date=end_date)
            else:
                data = EXPORT_MODES[mode](client, start_date=start_date, end_date=end_date)
        run_logger.log_transform("export", len(data), len(data), timer.duration_ms)

        files = []
        if output:
            metadata = temp_uploader(data, Path(output).expanduser())
            run_logger.log_file_write(metadata["file_path"], metadata["record_count"], metadata["file_size_bytes"])
            files.append(metadata)
        if split_dir and not data.empty:
            files.extend(save_by_month(data, str(Path(split_dir).expanduser()), run_logger))

        run_logger.success("export", row_count=len(data))
        summary.update({
            "status": "success",
            "records_exported": len(data),
            "files": [f["file_path"] for f in files],
        })

    except Exception as e:
        run_logger.error("export", e)
        logger.error(f"Export failed: {e}", exc_info=True)
        summary.update({"status": "error", "error": str(e)})

    end_time = datetime.now(timezone.utc)
    summary.update({
        "completed_at": end_time.isoformat(),
        "duration_seconds": (end_time - start_time).total_seconds(),
        "api_metrics": client.metrics.to_dict(),
    })

    logger.info(
        f"Export run complete: {summary.get('records_exported', 0)} records "
        f"in {summary['duration_seconds']:.2f}s",
        extra={"run_summary": summary}
    )

    return summary


def main(argv: Optional[list[str]] = None):
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Export CTR records from REDCap to Excel"
    )
    parser.add_argument(
        "--mode",
        choices=sorted(EXPORT_MODES),
        default="raw",
        help="raw codes, regrouped checkboxes, or labels (default: raw)",
    )
    parser.add_argument(
        "--start-date",
        type=str,
        default=None,
        help="Inclusive start date, yyyy-mm-dd (default: origin date)",
    )
    parser.add_argument(
        "--end-date",
        type=str,
        default=None,
        help="Inclusive end date, yyyy-mm-dd (default: today)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Workbook to write the export to",
    )
    parser.add_argument(
        "--split-dir",
        type=str,
        default=None,
        help="Folder receiving YYYY/MM/data_anon.xlsx files",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured JSON log lines",
    )

    args = parser.parse_args(argv)

    if not args.output and not args.split_dir:
        parser.error("one of --output or --split-dir is required")

    load_dotenv()
    setup_logging(level=args.log_level, json_format=args.json_logs)

    try:
        config = RedcapConfig.from_env()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    client = RedcapClient(config)

    result = run_export(
        client,
        mode=args.mode,
        start_date=args.start_date,
        end_date=args.end_date,
        output=args.output,
        split_dir=args.split_dir,
    )

    if result["status"] != "success":
        sys.exit(1)


if __name__ == "__main__":
    main()
