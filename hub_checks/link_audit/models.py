"""
Reference and Check Result Records

Plain records passed between the extractor, the resolvers and the report.
"""
from dataclasses import dataclass, asdict, replace
from typing import Optional, Dict, Any
from urllib.parse import urlsplit


# Outcomes a checked reference can end up with
OUTCOME_OK = "ok"
OUTCOME_CACHED = "cached"
OUTCOME_BROKEN = "broken"
OUTCOME_SKIPPED = "skipped"
OUTCOME_IGNORED = "ignored"

KIND_EXTERNAL = "external"
KIND_ANCHOR = "anchor"
KIND_LOCAL = "local"
KIND_SKIPPED = "skipped"


@dataclass(frozen=True)
class Reference:
    """A single link or image target found in a Markdown document."""

    source: str
    line: int
    target: str
    text: str = ""
    is_image: bool = False
    syntax: str = "inline"  # inline | reference | autolink | html

    @property
    def kind(self) -> str:
        target = self.target.strip()
        if target.startswith("#"):
            return KIND_ANCHOR
        if target.startswith("//"):
            return KIND_EXTERNAL

        scheme = urlsplit(target).scheme.lower()
        if scheme in ("http", "https"):
            return KIND_EXTERNAL
        if scheme:
            return KIND_SKIPPED
        return KIND_LOCAL

    @property
    def url(self) -> str:
        """Target as a requestable URL (protocol-relative targets get https)"""
        target = self.target.strip()
        if target.startswith("//"):
            return "https:" + target
        return target


@dataclass
class CheckResult:
    """Outcome of resolving one target, optionally tied to its reference."""

    target: str
    ok: bool
    outcome: str
    status_code: Optional[int] = None
    final_url: Optional[str] = None
    error: Optional[str] = None
    elapsed_ms: Optional[float] = None
    source: Optional[str] = None
    line: Optional[int] = None
    kind: Optional[str] = None
    is_image: bool = False

    def for_reference(self, reference: Reference) -> "CheckResult":
        """Copy of this result attributed to a specific reference"""
        return replace(
            self,
            target=reference.target,
            source=reference.source,
            line=reference.line,
            kind=reference.kind,
            is_image=reference.is_image,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def broken(reference: Reference, error: str, status_code: Optional[int] = None) -> CheckResult:
    """Build a broken result for a reference"""
    return CheckResult(
        target=reference.target,
        ok=False,
        outcome=OUTCOME_BROKEN,
        status_code=status_code,
        error=error,
    ).for_reference(reference)


def passed(reference: Reference, outcome: str = OUTCOME_OK) -> CheckResult:
    """Build an OK (or skipped/ignored) result for a reference"""
    return CheckResult(
        target=reference.target,
        ok=True,
        outcome=outcome,
    ).for_reference(reference)
