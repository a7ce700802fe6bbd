"""
Document Audit - Independent Per-Document Checking

Each Markdown document is audited independently so several documents can
be checked in parallel. External URLs go through a caller-supplied checker,
which lets the orchestrator share one de-duplicated checker across threads.
"""
import logging
from pathlib import Path
from typing import Callable, Dict, Any, List
from datetime import datetime

from .config import PROJECT_ROOT, is_ignored
from .link_client import check_url
from .local_refs import AnchorIndex, resolve_anchor, resolve_local
from .markdown_refs import MarkdownDocument
from .models import (
    Reference,
    CheckResult,
    passed,
    KIND_ANCHOR,
    KIND_LOCAL,
    KIND_SKIPPED,
    OUTCOME_OK,
    OUTCOME_CACHED,
    OUTCOME_BROKEN,
    OUTCOME_SKIPPED,
    OUTCOME_IGNORED,
)
from .structured_logger import StructuredLogger

logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)


class DocumentAudit:
    """
    Audit of every reference in a single Markdown document.

    Handles:
    - In-page anchors against the document's own headings
    - Relative files, images and cross-document anchors
    - External URLs through the supplied checker
    - Undefined reference-style labels
    """

    def __init__(self, document_path: Path, repo_root: Path = PROJECT_ROOT,
                 url_checker: Callable[[str], CheckResult] = None, offline: bool = False,
                 ignore_patterns: list = ()):
        """
        Initialize the audit for a document.

        Args:
            document_path: Markdown file to audit
            repo_root: Repository root for root-relative links and reporting
            url_checker: Function checking one external URL (default: check_url)
            offline: If True, external URLs are skipped instead of requested
            ignore_patterns: Extra compiled URL patterns that are never requested
        """
        self.document_path = Path(document_path)
        self.repo_root = Path(repo_root)
        self.url_checker = url_checker or check_url
        self.offline = offline
        self.ignore_patterns = list(ignore_patterns)

        try:
            self.source = self.document_path.resolve().relative_to(self.repo_root.resolve()).as_posix()
        except ValueError:
            self.source = str(self.document_path)

        self.anchor_index = AnchorIndex()

        self.results: List[CheckResult] = []
        self.ok_refs = 0
        self.skipped_refs = 0
        self.ignored_refs = 0
        self.broken_refs: List[Dict[str, Any]] = []

    def run(self) -> Dict[str, Any]:
        """
        Audit the document.

        Returns:
            Summary dictionary with:
                - total_refs: Number of references found
                - ok_refs: Number that resolved
                - broken_refs: List of broken findings
                - skipped_refs / ignored_refs: Numbers not checked
                - success: True if nothing is broken

        Raises:
            FileNotFoundError: If the document does not exist
        """
        start_time = datetime.now()

        document = MarkdownDocument.from_file(self.document_path, source=self.source)
        anchors = document.anchors
        self.anchor_index.register(self.document_path, anchors)

        logger.info(f"Auditing {self.source}: {len(document.references)} references, "
                    f"{len(anchors)} anchors")

        for reference in document.references:
            self._record(self._check_reference(reference, anchors))

        for line, label in document.undefined_labels:
            self._record(CheckResult(
                target=f"[{label}]",
                ok=False,
                outcome=OUTCOME_BROKEN,
                error=f"undefined reference label: {label}",
                source=self.source,
                line=line,
                kind="reference"
            ))

        elapsed = (datetime.now() - start_time).total_seconds()
        summary = self.get_summary()
        summary['elapsed_seconds'] = round(elapsed, 2)

        if summary['success']:
            logger.info(f"[OK] {self.source}: {self.ok_refs} ok, "
                        f"{self.skipped_refs} skipped, {self.ignored_refs} ignored, {elapsed:.1f}s")
        else:
            logger.warning(f"[WARN] {self.source}: {len(self.broken_refs)} broken of "
                           f"{len(self.results)} references")

        structured_logger.log_document_complete(
            document=self.source,
            total_refs=len(self.results),
            ok_refs=self.ok_refs,
            broken_refs=len(self.broken_refs),
            skipped_refs=self.skipped_refs,
            ignored_refs=self.ignored_refs,
            duration_sec=elapsed
        )

        return summary

    def _check_reference(self, reference: Reference, anchors) -> CheckResult:
        kind = reference.kind

        if kind == KIND_ANCHOR:
            return resolve_anchor(reference, anchors)
        if kind == KIND_LOCAL:
            return resolve_local(reference, self.document_path, self.repo_root, self.anchor_index)
        if kind == KIND_SKIPPED:
            return passed(reference, OUTCOME_SKIPPED)

        if is_ignored(reference.url, self.ignore_patterns):
            return passed(reference, OUTCOME_IGNORED)
        if self.offline:
            return passed(reference, OUTCOME_SKIPPED)
        return self.url_checker(reference.url).for_reference(reference)

    def _record(self, result: CheckResult) -> None:
        self.results.append(result)

        if result.outcome in (OUTCOME_OK, OUTCOME_CACHED):
            self.ok_refs += 1
        elif result.outcome == OUTCOME_SKIPPED:
            self.skipped_refs += 1
        elif result.outcome == OUTCOME_IGNORED:
            self.ignored_refs += 1
        else:
            self.broken_refs.append({
                'line': result.line,
                'target': result.target,
                'error': result.error
            })

        structured_logger.log_reference_checked(
            source=self.source,
            line=result.line,
            target=result.target,
            kind=result.kind,
            outcome=result.outcome,
            status_code=result.status_code,
            error=result.error
        )

    def get_summary(self) -> Dict[str, Any]:
        """
        Get current audit status summary.

        Returns:
            Dictionary with current counts and status
        """
        return {
            'document': self.source,
            'total_refs': len(self.results),
            'ok_refs': self.ok_refs,
            'skipped_refs': self.skipped_refs,
            'ignored_refs': self.ignored_refs,
            'broken_refs': self.broken_refs,
            'success': len(self.broken_refs) == 0,
            'results': self.results
        }
