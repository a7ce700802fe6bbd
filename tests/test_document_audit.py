"""Tests for the per-document audit."""

import re

import pytest

from hub_checks.link_audit import document_audit
from hub_checks.link_audit.document_audit import DocumentAudit
from conftest import FakeChecker


def test_clean_document(hub_repo, fake_checker):
    summary = DocumentAudit(hub_repo / "README.md", repo_root=hub_repo, url_checker=fake_checker).run()

    assert summary["document"] == "README.md"
    assert summary["success"] is True
    assert summary["total_refs"] == 6
    assert summary["ok_refs"] == 6
    assert summary["broken_refs"] == []
    assert sorted(fake_checker.calls) == [
        "https://github.com/acme/dashboard",
        "https://github.com/acme/raw-transactions-handler",
    ]


def test_results_carry_reference_location(hub_repo, fake_checker):
    summary = DocumentAudit(hub_repo / "docs" / "stages.md", repo_root=hub_repo, url_checker=fake_checker).run()

    by_target = {r.target: r for r in summary["results"]}
    external = by_target["https://github.com/acme/raw-transactions-handler"]
    assert external.source == "docs/stages.md"
    assert external.line == 5
    assert external.kind == "external"
    assert external.status_code == 200
    assert by_target["../README.md#components"].ok


def test_offline_skips_external(hub_repo, fake_checker):
    summary = DocumentAudit(hub_repo / "README.md", repo_root=hub_repo,
                            url_checker=fake_checker, offline=True).run()

    assert summary["success"] is True
    assert summary["skipped_refs"] == 2
    assert summary["ok_refs"] == 4
    assert fake_checker.calls == []


def test_ignore_patterns(hub_repo, fake_checker, monkeypatch):
    monkeypatch.setattr(document_audit, "is_ignored", lambda url, extra=(): "dashboard" in url)

    summary = DocumentAudit(hub_repo / "README.md", repo_root=hub_repo, url_checker=fake_checker).run()

    assert summary["ignored_refs"] == 1
    assert fake_checker.calls == ["https://github.com/acme/raw-transactions-handler"]


def test_broken_references(tmp_path):
    (tmp_path / "README.md").write_text(
        "# Hub\n"
        "\n"
        "![diagram](docs/images/missing.svg)\n"
        "Jump to [nowhere](#nowhere), mail [ops](mailto:ops@example.com).\n"
        "Read the [guide][guide].\n"
        "Down: [site](https://down.example.com)\n",
        encoding="utf-8"
    )
    checker = FakeChecker(broken={"https://down.example.com"})

    summary = DocumentAudit(tmp_path / "README.md", repo_root=tmp_path, url_checker=checker).run()

    assert summary["success"] is False
    assert summary["skipped_refs"] == 1
    assert [(b["line"], b["target"]) for b in summary["broken_refs"]] == [
        (3, "docs/images/missing.svg"),
        (4, "#nowhere"),
        (6, "https://down.example.com"),
        (5, "[guide]"),
    ]
    assert summary["broken_refs"][3]["error"] == "undefined reference label: guide"


def test_missing_document(tmp_path, fake_checker):
    with pytest.raises(FileNotFoundError):
        DocumentAudit(tmp_path / "nope.md", repo_root=tmp_path, url_checker=fake_checker).run()


def test_ignore_patterns_argument(hub_repo, fake_checker):
    audit = DocumentAudit(hub_repo / "README.md", repo_root=hub_repo, url_checker=fake_checker,
                          ignore_patterns=[re.compile(r"github\.com/acme/raw-")])
    summary = audit.run()

    assert summary["ignored_refs"] == 1
    assert fake_checker.calls == ["https://github.com/acme/dashboard"]
