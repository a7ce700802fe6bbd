"""
Run Report Export

Flattens check results into one table (one row per reference) and writes it
as CSV, JSON and/or Parquet for CI artifacts.
"""
import logging
from pathlib import Path
from typing import List, Iterable

import pandas as pd

from .config import REPORT_FORMATS, DEFAULT_REPORT_FORMATS
from .models import CheckResult
from .storage import get_report_path, atomic_write_json

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "source", "line", "kind", "is_image", "target", "outcome", "ok",
    "status_code", "final_url", "error", "elapsed_ms",
]


def results_to_frame(results: Iterable[CheckResult]) -> pd.DataFrame:
    """
    Build a report DataFrame from check results.

    Rows are ordered by document and line. An empty result list still
    yields the full column set.
    """
    rows = [result.to_dict() for result in results]
    df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    if df.empty:
        return df

    df["line"] = df["line"].astype("Int64")
    df["status_code"] = df["status_code"].astype("Int64")
    return df.sort_values(["source", "line"], kind="stable").reset_index(drop=True)


def write_report(results: List[CheckResult], run_id: str, formats: List[str] = None,
                 base_dir: Path = None) -> List[Path]:
    """
    Write the run report in the requested formats.

    Args:
        results: Check results of the run
        run_id: Run identifier used in the report path
        formats: Any of csv, json, parquet (default: csv)
        base_dir: Reports directory (default: from config)

    Returns:
        Paths of the written files

    Raises:
        ValueError: On an unknown format
    """
    formats = formats or DEFAULT_REPORT_FORMATS
    unknown = [fmt for fmt in formats if fmt not in REPORT_FORMATS]
    if unknown:
        raise ValueError(f"Unknown report format(s): {', '.join(unknown)}")

    df = results_to_frame(results)
    written = []

    for fmt in dict.fromkeys(formats):
        path = get_report_path(run_id, fmt, base_dir)
        path.parent.mkdir(parents=True, exist_ok=True)

        if fmt == "csv":
            df.to_csv(path, index=False)
        elif fmt == "parquet":
            df.to_parquet(path, index=False)
        else:
            atomic_write_json({"run_id": run_id, "results": [r.to_dict() for r in results]}, path)

        logger.info(f"Report written: {path} ({len(df)} rows)")
        written.append(path)

    return written
