import io
import json
import time

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from hub_checks.link_audit.models import CheckResult, OUTCOME_OK, OUTCOME_BROKEN


def make_response(status_code, url="https://example.com/", headers=None):
    """Real requests.Response with just enough filled in"""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response.headers = CaseInsensitiveDict(headers or {})
    response.raw = io.BytesIO(b"")
    return response


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Make tenacity backoff instant; records requested waits"""
    waits = []
    monkeypatch.setattr(time, "sleep", lambda seconds: waits.append(seconds))
    return waits


class FakeChecker:
    """Stands in for link_client.check_url; URLs in `broken` return 404"""

    def __init__(self, broken=()):
        self.broken = set(broken)
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        if url in self.broken:
            return CheckResult(target=url, ok=False, outcome=OUTCOME_BROKEN,
                               status_code=404, error="HTTP 404")
        return CheckResult(target=url, ok=True, outcome=OUTCOME_OK,
                           status_code=200, final_url=url)


@pytest.fixture()
def fake_checker():
    return FakeChecker()


HUB_README = """\
# Fraud Hub

- [Architecture](#architecture)
- [Components](#components)

## Architecture

![Architecture](docs/images/architecture.svg)

Details live in the [stages guide](docs/stages.md#load).

## Components

| Component | Repository |
|---|---|
| Handler | [raw-transactions-handler][handler] |
| Dashboard | [dashboard](https://github.com/acme/dashboard) |

[handler]: https://github.com/acme/raw-transactions-handler
"""

STAGES_DOC = """\
# Stages

## Ingest

See the [handler](https://github.com/acme/raw-transactions-handler).

## Load

Back to the [hub](../README.md#components).
"""


@pytest.fixture()
def hub_repo(tmp_path):
    """Small hub checkout: README, one extra doc, images and a manifest"""
    (tmp_path / "docs" / "images").mkdir(parents=True)
    (tmp_path / "metadata").mkdir()

    (tmp_path / "README.md").write_text(HUB_README, encoding="utf-8")
    (tmp_path / "docs" / "stages.md").write_text(STAGES_DOC, encoding="utf-8")
    (tmp_path / "docs" / "images" / "architecture.svg").write_text("<svg/>", encoding="utf-8")

    manifest = {
        "documents": ["README.md", "docs/stages.md"],
        "components": {
            "raw_transactions_handler": {
                "name": "raw-transactions-handler",
                "url": "https://github.com/acme/raw-transactions-handler"
            },
            "dashboard": {
                "name": "dashboard",
                "url": "https://github.com/acme/dashboard"
            }
        }
    }
    (tmp_path / "metadata" / "components.json").write_text(json.dumps(manifest), encoding="utf-8")
    return tmp_path
