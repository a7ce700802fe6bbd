"""
Link Audit Orchestrator

Audits every hub document in parallel. External URLs are shared across
documents so each one is requested at most once per run.
"""
import sys
import argparse
import logging
import threading
from pathlib import Path
from datetime import datetime
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Dict, Any, Callable, Optional

from .config import (
    PROJECT_ROOT,
    MANIFEST_FILE,
    CACHE_FILE,
    IMAGES_DIR,
    MAX_WORKERS,
    LOGS_DIR,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    REPORT_FORMATS,
    DEFAULT_REPORT_FORMATS,
    load_manifest,
    get_documents,
    get_ignore_patterns
)
from .document_audit import DocumentAudit
from .hub_consistency import check_components_linked, find_orphan_images
from .link_client import check_url, test_connectivity
from .models import CheckResult, OUTCOME_CACHED
from .report import write_report
from .results_cache import LinkCache
from .structured_logger import StructuredLogger

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, logs_dir: Path = LOGS_DIR):
    """
    Configure logging for the orchestrator.

    Args:
        verbose: If True, set DEBUG level; otherwise INFO
        logs_dir: Directory for the log files

    Returns:
        Tuple of (human log file path, JSON log file path)
    """
    level = logging.DEBUG if verbose else logging.INFO

    # Configure root logger
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    # Also log to file (human-readable)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_file = logs_dir / f"link_audit_{timestamp}.log"
    json_log_file = logs_dir / f"link_audit_{timestamp}.json"

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    logging.getLogger().addHandler(file_handler)

    # Setup structured JSON logging
    structured_logger = StructuredLogger('orchestrator')
    structured_logger.setup_json_logging(json_log_file)

    # Document audits log through their own structured logger
    from .document_audit import structured_logger as audit_logger
    audit_logger.setup_json_logging(json_log_file)

    logging.info(f"Logging to: {log_file}")
    logging.info(f"JSON logs: {json_log_file}")

    return log_file, json_log_file


class SharedUrlChecker:
    """
    De-duplicating URL checker shared by all document audits of a run.

    The first thread to ask for a URL performs the check; later askers
    wait on that URL's lock and reuse the result.
    """

    def __init__(self, cache: Optional[LinkCache] = None, use_cache: bool = True,
                 check: Callable[[str], CheckResult] = check_url):
        """
        Args:
            cache: Link cache to consult and update (None disables caching)
            use_cache: If False, cached entries are not trusted (still updated)
            check: Function performing the actual check
        """
        self.cache = cache
        self.use_cache = use_cache
        self._check = check
        self._lock = threading.Lock()
        self._url_locks: Dict[str, threading.Lock] = {}
        self._results: Dict[str, CheckResult] = {}
        self.checked = 0
        self.cached = 0

    def __call__(self, url: str) -> CheckResult:
        with self._lock:
            url_lock = self._url_locks.setdefault(url, threading.Lock())

        with url_lock:
            if url in self._results:
                return self._results[url]

            if self.cache is not None and self.use_cache and self.cache.is_fresh(url):
                logger.debug(f"  Cached: {url}")
                result = CheckResult(target=url, ok=True, outcome=OUTCOME_CACHED)
                with self._lock:
                    self.cached += 1
            else:
                result = self._check(url)
                with self._lock:
                    self.checked += 1
                if self.cache is not None:
                    if result.ok:
                        self.cache.mark_checked(url, result.status_code, result.final_url)
                    else:
                        self.cache.forget(url)

            self._results[url] = result
            return result


def audit_document(document: Path, repo_root: Path, url_checker: Callable[[str], CheckResult],
                   offline: bool, ignore_patterns: list = ()) -> Dict[str, Any]:
    """
    Audit a single document.

    This function is designed to run in a thread pool.

    Returns:
        Summary dictionary from DocumentAudit
    """
    audit = DocumentAudit(document, repo_root=repo_root, url_checker=url_checker,
                          offline=offline, ignore_patterns=ignore_patterns)
    return audit.run()


def audit_hub(
    documents: List[Path],
    repo_root: Path = PROJECT_ROOT,
    manifest: Dict[str, Any] = None,
    skip_cached: bool = True,
    max_workers: int = MAX_WORKERS,
    offline: bool = False,
    formats: List[str] = None,
    cache_file: Path = CACHE_FILE,
    image_dir: Path = IMAGES_DIR,
    reports_dir: Path = None,
    hub_document: str = "README.md",
    url_checker: Callable[[str], CheckResult] = check_url
) -> Dict[str, Any]:
    """
    Audit all hub documents in parallel.

    Args:
        documents: Markdown files to audit
        repo_root: Repository root
        manifest: Loaded hub manifest; enables the component link check
        skip_cached: Trust recently verified URLs from the cache
        max_workers: Maximum concurrent document threads
        offline: Skip external URLs entirely
        formats: Report formats to write (None or empty: no report)
        cache_file: Link cache location
        image_dir: Directory scanned for unreferenced images
        reports_dir: Reports directory (default: from config)
        hub_document: Document expected to link every component
        url_checker: Function checking one external URL

    Returns:
        Summary dictionary with results for all documents
    """
    start_time = datetime.now()
    run_id = start_time.strftime('%Y%m%dT%H%M%S')

    logger.info("=" * 80)
    logger.info("HUB LINK AUDIT")
    logger.info("=" * 80)
    logger.info(f"Documents: {len(documents)} ({', '.join(Path(d).name for d in documents)})")
    logger.info(f"Concurrent workers: {max_workers}")
    logger.info(f"Use cache: {skip_cached}")
    logger.info(f"Offline: {offline}")
    logger.info("=" * 80)

    if not offline:
        logger.info("Testing connectivity...")
        if not test_connectivity():
            logger.error("Connectivity test failed. Aborting (use --offline to check local references only).")
            return {'success': False, 'error': 'Connectivity test failed'}

    cache = None if offline else LinkCache(cache_file)
    shared_checker = SharedUrlChecker(cache, use_cache=skip_cached, check=url_checker)
    ignore_patterns = get_ignore_patterns(manifest)

    document_results = {}
    failed_documents = []
    all_results: List[CheckResult] = []

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_document = {
            executor.submit(audit_document, Path(document), Path(repo_root), shared_checker,
                            offline, ignore_patterns): document
            for document in documents
        }

        for future in as_completed(future_to_document):
            document = str(future_to_document[future])
            try:
                result = future.result()
                document_results[result['document']] = result
                all_results.extend(result['results'])

                if not result['success']:
                    failed_documents.append(result['document'])

            except Exception as e:
                logger.error(f"[FAIL] {document} audit crashed: {e}")
                failed_documents.append(document)
                document_results[document] = {
                    'document': document,
                    'success': False,
                    'error': str(e)
                }

    manifest_findings = []
    if manifest is not None and hub_document in document_results:
        manifest_findings = check_components_linked(manifest, all_results, hub_document)
        all_results.extend(manifest_findings)
    elif manifest is not None:
        logger.info(f"Component link check skipped: {hub_document} was not audited")

    orphan_images = find_orphan_images(image_dir, all_results, repo_root)

    if cache is not None:
        cache.prune()
        cache.save()

    report_files = write_report(all_results, run_id, formats, reports_dir) if formats else []

    elapsed = (datetime.now() - start_time).total_seconds()

    broken = [r for r in all_results if not r.ok]
    crashed = [d for d, r in document_results.items() if 'error' in r]

    summary = {
        'success': not broken and not crashed,
        'run_id': run_id,
        'total_documents': len(documents),
        'failed_documents': sorted(failed_documents),
        'total_refs': len(all_results) - len(manifest_findings),
        'broken_refs': len(broken),
        'broken': [r.to_dict() for r in broken],
        'manifest_findings': len(manifest_findings),
        'orphan_images': orphan_images,
        'external_urls_checked': shared_checker.checked,
        'external_urls_cached': shared_checker.cached,
        'report_files': [str(p) for p in report_files],
        'elapsed_seconds': round(elapsed, 2),
        'document_results': document_results
    }

    logger.info("=" * 80)
    logger.info("AUDIT COMPLETE")
    logger.info("=" * 80)
    logger.info(f"Documents: {len(documents)} ({len(failed_documents)} with problems)")
    logger.info(f"References: {summary['total_refs']}")
    logger.info(f"Broken: {len(broken)}")
    for finding in broken:
        location = f"{finding.source}:{finding.line}" if finding.line else finding.source
        logger.warning(f"  {location} {finding.target} ({finding.error})")
    logger.info(f"External URLs checked: {shared_checker.checked}, from cache: {shared_checker.cached}")
    if orphan_images:
        logger.warning(f"Unreferenced images: {', '.join(orphan_images)}")
    logger.info(f"Total time: {elapsed:.1f}s")
    logger.info("=" * 80)

    if summary['success']:
        logger.info("[SUCCESS] ALL REFERENCES RESOLVE")
    else:
        logger.warning(f"[WARN] COMPLETED WITH {len(broken)} BROKEN REFERENCES")

    StructuredLogger('orchestrator').log_run_complete(
        total_documents=len(documents),
        failed_documents=len(failed_documents),
        total_refs=summary['total_refs'],
        broken_refs=len(broken),
        external_urls_checked=shared_checker.checked,
        external_urls_cached=shared_checker.cached,
        orphan_images=len(orphan_images),
        duration_sec=elapsed
    )

    return summary


def main(argv: List[str] = None):
    """CLI entry point for the link audit"""
    parser = argparse.ArgumentParser(
        description="Hub Link Audit - verify links, images and anchors in the hub documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Audit every document listed in metadata/components.json
  hub-checks

  # Local files and anchors only, no network
  hub-checks --offline

  # Re-check every external URL and keep CSV + Parquet reports
  hub-checks --force --format csv --format parquet

  # Audit specific documents
  python -m hub_checks.link_audit.orchestrate --docs README.md,docs/architecture.md
        """
    )

    parser.add_argument(
        '--docs',
        type=str,
        help='Comma-separated documents to audit (default: documents listed in the manifest)'
    )

    parser.add_argument(
        '--manifest',
        type=Path,
        default=MANIFEST_FILE,
        help='Hub manifest (default: metadata/components.json)'
    )

    parser.add_argument(
        '--repo-root',
        type=Path,
        default=PROJECT_ROOT,
        help='Repository root (default: this checkout)'
    )

    parser.add_argument(
        '--force',
        action='store_true',
        help='Re-check external URLs even if cached'
    )

    parser.add_argument(
        '--offline',
        action='store_true',
        help='Skip external URLs (check local files and anchors only)'
    )

    parser.add_argument(
        '--max-workers',
        type=int,
        default=MAX_WORKERS,
        help=f'Maximum concurrent document workers (default: {MAX_WORKERS})'
    )

    parser.add_argument(
        '--format',
        action='append',
        choices=REPORT_FORMATS,
        dest='formats',
        help=f'Report format, repeatable (default: {", ".join(DEFAULT_REPORT_FORMATS)})'
    )

    parser.add_argument(
        '--no-report',
        action='store_true',
        help='Do not write a report'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging (DEBUG level)'
    )

    args = parser.parse_args(argv)

    if args.max_workers < 1:
        print(f"Error: --max-workers must be at least 1, got {args.max_workers}")
        sys.exit(2)

    try:
        manifest = load_manifest(args.manifest)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(2)

    repo_root = Path(args.repo_root)
    if args.docs:
        documents = [repo_root / d.strip() for d in args.docs.split(',') if d.strip()]
    else:
        documents = get_documents(manifest, repo_root)

    if not documents:
        print("Error: No documents to audit")
        sys.exit(2)

    setup_logging(args.verbose)

    summary = audit_hub(
        documents=documents,
        repo_root=repo_root,
        manifest=manifest,
        skip_cached=not args.force,
        max_workers=args.max_workers,
        offline=args.offline,
        formats=[] if args.no_report else (args.formats or DEFAULT_REPORT_FORMATS),
        image_dir=repo_root / IMAGES_DIR.relative_to(PROJECT_ROOT)
    )

    # Exit with error code if failures
    sys.exit(0 if summary['success'] else 1)


if __name__ == "__main__":
    main()
