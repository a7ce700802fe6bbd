"""
Structured JSON Logging for the Link Audit

Provides both human-readable console logs and structured JSON logs for analysis.
"""
import json
import logging
from pathlib import Path
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs structured JSON logs.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if provided
        if hasattr(record, 'extra_data'):
            log_data.update(record.extra_data)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """
    Logger that outputs both human-readable and structured JSON logs.
    """

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name
        """
        self.logger = logging.getLogger(name)
        self.json_log_file = None

    def setup_json_logging(self, log_file: Path):
        """
        Setup JSON logging to a separate file.

        Args:
            log_file: Path to JSON log file
        """
        self.json_log_file = log_file

        json_handler = logging.FileHandler(log_file)
        json_handler.setLevel(logging.DEBUG)
        json_handler.setFormatter(JSONFormatter())

        self.logger.addHandler(json_handler)

    def log_event(self, level: str, message: str, **extra_data):
        """
        Log an event with structured data.

        Args:
            level: Log level (INFO, WARNING, ERROR, etc.)
            message: Human-readable message
            **extra_data: Additional structured data to log
        """
        log_method = getattr(self.logger, level.lower())

        # Attach extra data to the record
        extra = {'extra_data': extra_data} if extra_data else {}

        log_method(message, extra=extra)

    def log_reference_checked(self, source: str, line: int, target: str, kind: str,
                              outcome: str, status_code: int = None, error: str = None):
        """
        Log the outcome of one reference.

        Broken references log at WARNING, everything else at DEBUG.
        """
        self.log_event(
            'WARNING' if outcome == 'broken' else 'DEBUG',
            f"{source}:{line} {target} -> {outcome}",
            event_type="reference_checked",
            source=source,
            line=line,
            target=target,
            kind=kind,
            outcome=outcome,
            status_code=status_code,
            error=error
        )

    def log_document_complete(self, document: str, total_refs: int, ok_refs: int,
                              broken_refs: int, skipped_refs: int, ignored_refs: int,
                              duration_sec: float):
        """
        Log document completion with structured data.

        Args:
            document: Document path relative to the repository root
            total_refs: References found
            ok_refs: References that resolved
            broken_refs: References that did not resolve
            skipped_refs: References not checked (other schemes, offline)
            ignored_refs: References matching ignore patterns
            duration_sec: Time taken
        """
        self.log_event(
            'INFO',
            f"{document} complete: {ok_refs} ok, {broken_refs} broken",
            event_type="document_complete",
            document=document,
            total_refs=total_refs,
            ok_refs=ok_refs,
            broken_refs=broken_refs,
            skipped_refs=skipped_refs,
            ignored_refs=ignored_refs,
            duration_seconds=round(duration_sec, 2),
            success=broken_refs == 0
        )

    def log_run_complete(self, total_documents: int, failed_documents: int,
                         total_refs: int, broken_refs: int, external_urls_checked: int,
                         external_urls_cached: int, orphan_images: int, duration_sec: float):
        """
        Log overall run completion with structured data.

        Args:
            total_documents: Documents audited
            failed_documents: Documents with broken references or crashes
            total_refs: References across all documents
            broken_refs: Broken findings, including manifest findings
            external_urls_checked: Unique URLs requested this run
            external_urls_cached: Unique URLs answered from the cache
            orphan_images: Images referenced by no document
            duration_sec: Total run duration
        """
        self.log_event(
            'INFO',
            f"Link audit complete: {broken_refs} broken of {total_refs} references",
            event_type="run_complete",
            total_documents=total_documents,
            failed_documents=failed_documents,
            total_refs=total_refs,
            broken_refs=broken_refs,
            external_urls_checked=external_urls_checked,
            external_urls_cached=external_urls_cached,
            orphan_images=orphan_images,
            duration_seconds=round(duration_sec, 2),
            success=broken_refs == 0
        )
