"""
Hub Consistency Checks

Cross-checks the hub manifest and image directory against what the audited
documents actually reference:
- every component repository in the manifest is linked from the hub
- images nobody references are reported (warning only)
"""
import logging
from pathlib import Path
from typing import List, Dict, Any, Iterable
from urllib.parse import unquote

from .models import CheckResult, OUTCOME_BROKEN, KIND_EXTERNAL, KIND_LOCAL

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp"}


def _normalize_url(url: str) -> str:
    """Compare repository URLs without scheme case, trailing slash or .git"""
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]
    return url.lower()


def check_components_linked(manifest: Dict[str, Any], results: Iterable[CheckResult],
                            hub_document: str = "README.md") -> List[CheckResult]:
    """
    Verify that every component repository in the manifest is linked from the hub.

    Args:
        manifest: Loaded hub manifest
        results: Check results of the run
        hub_document: Document expected to link the components

    Returns:
        Broken findings, one per component that is not linked
    """
    linked = {
        _normalize_url(result.target)
        for result in results
        if result.source == hub_document and result.kind == KIND_EXTERNAL
    }

    findings = []
    for key, component in manifest["components"].items():
        if _normalize_url(component["url"]) in linked:
            continue
        logger.warning(f"Component '{key}' ({component['url']}) is not linked from {hub_document}")
        findings.append(CheckResult(
            target=component["url"],
            ok=False,
            outcome=OUTCOME_BROKEN,
            error=f"component '{key}' is not linked from {hub_document}",
            source="metadata/components.json",
            kind="manifest"
        ))
    return findings


def find_orphan_images(image_dir: Path, results: Iterable[CheckResult],
                       repo_root: Path) -> List[str]:
    """
    Find image files that no audited document references.

    Args:
        image_dir: Directory holding the hub's images
        results: Check results of the run
        repo_root: Repository root the results' sources are relative to

    Returns:
        Image paths relative to the repository root, sorted
    """
    image_dir = Path(image_dir)
    if not image_dir.is_dir():
        return []

    repo_root = Path(repo_root).resolve()
    referenced = set()
    for result in results:
        if result.kind != KIND_LOCAL or not result.ok or not result.source:
            continue
        target = unquote(result.target.split("#")[0].split("?")[0])
        if target.startswith("/"):
            resolved = repo_root / target.lstrip("/")
        else:
            resolved = (repo_root / result.source).parent / target
        referenced.add(resolved.resolve())

    orphans = []
    for path in sorted(image_dir.rglob("*")):
        if path.is_file() and path.suffix.lower() in IMAGE_SUFFIXES and path.resolve() not in referenced:
            orphans.append(path.resolve().relative_to(repo_root).as_posix())

    for orphan in orphans:
        logger.warning(f"Image not referenced by any document: {orphan}")
    return orphans
