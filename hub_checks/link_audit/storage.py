"""
Atomic Storage Handler

Implements the "write-and-rename" pattern for the link cache and reports.
Ensures a crashed run never leaves a half-written file behind.
"""
import os
import json
import uuid
from pathlib import Path
from typing import Dict, Any


def atomic_write_json(data: Dict[str, Any], final_path: Path) -> None:
    """
    Atomically write JSON data to a file using write-and-rename pattern.

    Args:
        data: Dictionary to write as JSON
        final_path: Final destination path for the file

    Raises:
        Exception: If write fails, temp file is cleaned up automatically
    """
    final_path = Path(final_path)

    # Ensure parent directory exists
    final_path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in same directory (must be same filesystem for atomic rename)
    temp_path = final_path.parent / f"{final_path.name}.{uuid.uuid4().hex[:8]}.tmp"

    try:
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        os.replace(temp_path, final_path)

    except Exception:
        # Clean up temporary file if write failed
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass  # Original error matters more
        raise


def get_report_path(run_id: str, suffix: str, base_dir: Path = None) -> Path:
    """
    Generate the output path for a run report.

    Pattern: reports/run_id={run_id}/report.{suffix}

    Args:
        run_id: Run identifier (timestamp)
        suffix: File extension without the dot (csv, json, parquet)
        base_dir: Base directory for reports (default: from config)

    Returns:
        Path object for the report file
    """
    if base_dir is None:
        from .config import REPORTS_DIR
        base_dir = REPORTS_DIR

    return Path(base_dir) / f"run_id={run_id}" / f"report.{suffix}"


def load_json_file(file_path: Path) -> Dict[str, Any]:
    """
    Load a JSON file safely.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        return json.load(f)
