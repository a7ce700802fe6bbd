"""
Configuration for the Link Audit

Module-level settings for the hub checks.
Values can be overridden through environment variables or a .env file
at the repository root.
"""
import os
import json
import re
from pathlib import Path
from dotenv import load_dotenv

# Get project root (3 levels up: link_audit -> hub_checks -> project_root)
PROJECT_ROOT = Path(__file__).parent.parent.parent.absolute()

# Load environment variables
load_dotenv(PROJECT_ROOT / ".env")


def _env_int(name: str, default: int) -> int:
    """Read an integer setting, failing loudly on garbage"""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


# GitHub token (optional) - raises the unauthenticated rate limit on repo links
GITHUB_TOKEN = os.getenv("HUB_GITHUB_TOKEN")
GITHUB_HOSTS = {"github.com", "api.github.com"}

USER_AGENT = os.getenv("HUB_USER_AGENT", "fraud-analytics-hub-link-audit/1.0")

# HTTP Settings
HTTP_TIMEOUT = _env_int("HUB_HTTP_TIMEOUT", 15)  # seconds

# Concurrency Settings
MAX_WORKERS = _env_int("HUB_MAX_WORKERS", 8)

# Retry Configuration
MAX_RETRIES = _env_int("HUB_MAX_RETRIES", 3)
RETRY_INITIAL_WAIT = _env_int("HUB_RETRY_INITIAL_WAIT", 1)  # seconds
RETRY_MAX_WAIT = _env_int("HUB_RETRY_MAX_WAIT", 20)  # seconds
RETRY_MULTIPLIER = 2  # exponential backoff multiplier

# Successful external checks are trusted for this long
CACHE_TTL_HOURS = _env_int("HUB_CACHE_TTL_HOURS", 24)

# URLs matching any of these are never requested (e.g. localhost examples)
IGNORE_PATTERNS = [
    re.compile(p.strip())
    for p in os.getenv("HUB_IGNORE_PATTERNS", r"^https?://localhost").split(",")
    if p.strip()
]

# Probe used before a run to tell "the internet is down" from "links are broken"
CONNECTIVITY_PROBE_URL = os.getenv("HUB_CONNECTIVITY_PROBE_URL", "https://github.com")

# Paths
METADATA_DIR = PROJECT_ROOT / "metadata"
MANIFEST_FILE = METADATA_DIR / "components.json"
CACHE_FILE = METADATA_DIR / "link_cache" / "external_urls.json"
IMAGES_DIR = PROJECT_ROOT / "docs" / "images"
REPORTS_DIR = PROJECT_ROOT / "reports"
LOGS_DIR = PROJECT_ROOT / "logs"

# Report formats understood by report.write_report
REPORT_FORMATS = ("csv", "json", "parquet")
DEFAULT_REPORT_FORMATS = ["csv"]


def load_manifest(manifest_file: Path = MANIFEST_FILE) -> dict:
    """
    Load the hub manifest (component repositories and audited documents).

    Raises:
        FileNotFoundError: If the manifest does not exist
        ValueError: If required sections are missing
    """
    manifest_file = Path(manifest_file)
    if not manifest_file.exists():
        raise FileNotFoundError(f"Hub manifest not found: {manifest_file}")

    with open(manifest_file, 'r', encoding='utf-8') as f:
        manifest = json.load(f)

    for section in ("components", "documents"):
        if section not in manifest:
            raise ValueError(f"Hub manifest {manifest_file} has no '{section}' section")

    for key, component in manifest["components"].items():
        if "url" not in component:
            raise ValueError(f"Component '{key}' in {manifest_file} has no url")

    patterns = manifest.get("ignore_patterns", [])
    if not isinstance(patterns, list):
        raise ValueError(f"'ignore_patterns' in {manifest_file} must be a list")
    for pattern in patterns:
        try:
            re.compile(pattern)
        except (re.error, TypeError) as e:
            raise ValueError(f"Invalid ignore pattern {pattern!r} in {manifest_file}: {e}")

    return manifest


def get_ignore_patterns(manifest: dict) -> list:
    """Compiled URL ignore patterns declared in the manifest (e.g. unpublished repos)"""
    if not manifest:
        return []
    return [re.compile(p) for p in manifest.get("ignore_patterns", [])]


def get_documents(manifest: dict, repo_root: Path = PROJECT_ROOT) -> list:
    """Get absolute paths of the documents listed in the manifest"""
    return [Path(repo_root) / doc for doc in manifest["documents"]]


def is_ignored(url: str, extra_patterns: list = ()) -> bool:
    """Check if a URL matches a configured ignore pattern or one of extra_patterns"""
    return any(pattern.search(url) for pattern in [*IGNORE_PATTERNS, *extra_patterns])


# Logging Configuration
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
