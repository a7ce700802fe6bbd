"""
Local Reference Resolution

Resolves relative file links, image paths and in-page anchors against the
repository checkout. Nothing here touches the network.
"""
import re
import logging
from pathlib import Path
from typing import Dict, Set
from urllib.parse import urlsplit, unquote

from .markdown_refs import MarkdownDocument
from .models import Reference, CheckResult, broken, passed

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = {".md", ".markdown", ".mdown"}
LINE_FRAGMENT_RE = re.compile(r"^L\d+(?:C\d+)?(?:-L\d+(?:C\d+)?)?$")


class AnchorIndex:
    """
    Lazily parsed heading anchors per Markdown file.

    One index is owned by one document audit, so no locking is needed.
    """

    def __init__(self):
        self._anchors: Dict[Path, Set[str]] = {}

    def anchors_for(self, path: Path) -> Set[str]:
        path = Path(path).resolve()
        if path not in self._anchors:
            self._anchors[path] = MarkdownDocument.from_file(path).anchors
        return self._anchors[path]

    def register(self, path: Path, anchors: Set[str]) -> None:
        """Seed the index with anchors of a document that is already parsed"""
        self._anchors[Path(path).resolve()] = set(anchors)


def anchor_exists(fragment: str, anchors: Set[str]) -> bool:
    """Anchors match exactly, falling back to a case-insensitive match"""
    if fragment in anchors:
        return True
    return fragment.lower() in {anchor.lower() for anchor in anchors}


def resolve_anchor(reference: Reference, anchors: Set[str]) -> CheckResult:
    """
    Check an in-page link (#fragment) against the source document's anchors.

    A bare '#' points at the top of the page and always resolves.
    """
    fragment = unquote(reference.target.strip()[1:])
    if not fragment or anchor_exists(fragment, anchors):
        return passed(reference)
    return broken(reference, f"anchor not found: #{fragment}")


def resolve_local(reference: Reference, document_path: Path, repo_root: Path,
                  anchor_index: AnchorIndex = None) -> CheckResult:
    """
    Resolve a relative or root-relative target to a file in the repository.

    Args:
        reference: Local reference to resolve
        document_path: Path of the document the reference appears in
        repo_root: Repository root ('/'-prefixed targets resolve against it)
        anchor_index: Anchor cache used for '#fragment' on Markdown targets

    Returns:
        CheckResult for the reference
    """
    if anchor_index is None:
        anchor_index = AnchorIndex()

    target = reference.target.strip()
    if not target:
        return broken(reference, "empty link target")

    parts = urlsplit(target)
    path_part = unquote(parts.path)
    fragment = unquote(parts.fragment)

    root = Path(repo_root).resolve()
    if path_part.startswith("/"):
        candidate = root / path_part.lstrip("/")
    else:
        candidate = Path(document_path).parent / path_part

    resolved = candidate.resolve()
    if resolved != root and root not in resolved.parents:
        return broken(reference, f"target escapes repository root: {target}")

    relative = resolved.relative_to(root).as_posix() or "."
    if not resolved.exists():
        return broken(reference, f"file not found: {relative}")

    if reference.is_image and not resolved.is_file():
        return broken(reference, f"image target is not a file: {relative}")

    if fragment and resolved.is_file():
        if resolved.suffix.lower() in MARKDOWN_SUFFIXES:
            if not anchor_exists(fragment, anchor_index.anchors_for(resolved)):
                return broken(reference, f"anchor not found: {relative}#{fragment}")
        elif not LINE_FRAGMENT_RE.match(fragment):
            logger.debug(f"Cannot verify fragment #{fragment} on {relative}, accepting")

    return passed(reference)
