"""Tests for the link audit orchestrator and CLI."""

import json

import pytest

from hub_checks.link_audit import orchestrate
from hub_checks.link_audit.config import load_manifest
from hub_checks.link_audit.orchestrate import audit_hub, SharedUrlChecker, main
from hub_checks.link_audit.results_cache import LinkCache
from conftest import FakeChecker


@pytest.fixture(autouse=True)
def online(monkeypatch):
    monkeypatch.setattr(orchestrate, "test_connectivity", lambda: True)


def run_audit(repo, checker, **kwargs):
    manifest = load_manifest(repo / "metadata" / "components.json")
    options = dict(
        documents=[repo / doc for doc in manifest["documents"]],
        repo_root=repo,
        manifest=manifest,
        cache_file=repo / "cache.json",
        image_dir=repo / "docs" / "images",
        reports_dir=repo / "reports",
        url_checker=checker,
        max_workers=2,
    )
    options.update(kwargs)
    return audit_hub(**options)


def test_clean_hub(hub_repo, fake_checker):
    summary = run_audit(hub_repo, fake_checker, formats=["csv"])

    assert summary["success"] is True
    assert summary["total_documents"] == 2
    assert summary["total_refs"] == 8
    assert summary["broken_refs"] == 0
    assert summary["orphan_images"] == []
    assert set(summary["document_results"]) == {"README.md", "docs/stages.md"}
    assert len(summary["report_files"]) == 1
    assert summary["report_files"][0].endswith("report.csv")


def test_each_url_requested_once_per_run(hub_repo, fake_checker):
    summary = run_audit(hub_repo, fake_checker)

    # The handler URL is linked from both documents
    assert sorted(fake_checker.calls) == [
        "https://github.com/acme/dashboard",
        "https://github.com/acme/raw-transactions-handler",
    ]
    assert summary["external_urls_checked"] == 2


def test_cache_skips_recent_urls(hub_repo):
    first = FakeChecker()
    run_audit(hub_repo, first)
    assert json.loads((hub_repo / "cache.json").read_text())["summary"]["total_urls"] == 2

    second = FakeChecker()
    summary = run_audit(hub_repo, second)
    assert second.calls == []
    assert summary["external_urls_cached"] == 2
    assert summary["success"] is True

    forced = FakeChecker()
    summary = run_audit(hub_repo, forced, skip_cached=False)
    assert len(forced.calls) == 2
    assert summary["external_urls_cached"] == 0


def test_broken_url_fails_run_and_is_not_cached(hub_repo):
    checker = FakeChecker(broken={"https://github.com/acme/dashboard"})

    summary = run_audit(hub_repo, checker)

    assert summary["success"] is False
    assert summary["broken_refs"] == 1
    assert summary["failed_documents"] == ["README.md"]
    assert summary["broken"][0]["status_code"] == 404
    assert not LinkCache(hub_repo / "cache.json").is_fresh("https://github.com/acme/dashboard")


def test_unlinked_component_is_a_finding(hub_repo, fake_checker):
    manifest_file = hub_repo / "metadata" / "components.json"
    manifest = json.loads(manifest_file.read_text())
    manifest["components"]["orchestration"] = {"url": "https://github.com/acme/orchestration"}
    manifest_file.write_text(json.dumps(manifest))

    summary = run_audit(hub_repo, fake_checker)

    assert summary["success"] is False
    assert summary["manifest_findings"] == 1
    assert summary["broken"][0]["error"] == "component 'orchestration' is not linked from README.md"


def test_component_check_needs_hub_document(hub_repo, fake_checker):
    summary = run_audit(hub_repo, fake_checker, documents=[hub_repo / "docs" / "stages.md"])

    assert summary["success"] is True
    assert summary["manifest_findings"] == 0
    assert set(summary["document_results"]) == {"docs/stages.md"}


def test_manifest_ignore_patterns(hub_repo, fake_checker):
    manifest_file = hub_repo / "metadata" / "components.json"
    manifest = json.loads(manifest_file.read_text())
    manifest["ignore_patterns"] = [r"^https://github\.com/acme/dashboard"]
    manifest_file.write_text(json.dumps(manifest))

    summary = run_audit(hub_repo, fake_checker)

    assert summary["success"] is True
    assert fake_checker.calls == ["https://github.com/acme/raw-transactions-handler"]
    assert summary["document_results"]["README.md"]["ignored_refs"] == 1
    # Ignored links still count as linked components
    assert summary["manifest_findings"] == 0


def test_orphan_images_are_warnings(hub_repo, fake_checker):
    (hub_repo / "docs" / "images" / "unused.png").write_bytes(b"\x89PNG")

    summary = run_audit(hub_repo, fake_checker)

    assert summary["success"] is True
    assert summary["orphan_images"] == ["docs/images/unused.png"]


def test_crashed_document_recorded(hub_repo, fake_checker):
    summary = run_audit(hub_repo, fake_checker, documents=[hub_repo / "README.md", hub_repo / "missing.md"])

    assert summary["success"] is False
    assert str(hub_repo / "missing.md") in summary["failed_documents"]
    assert "error" in summary["document_results"][str(hub_repo / "missing.md")]


def test_connectivity_failure_aborts(hub_repo, fake_checker, monkeypatch):
    monkeypatch.setattr(orchestrate, "test_connectivity", lambda: False)

    summary = run_audit(hub_repo, fake_checker)

    assert summary == {'success': False, 'error': 'Connectivity test failed'}
    assert fake_checker.calls == []


def test_offline_needs_no_network_and_no_cache(hub_repo, fake_checker, monkeypatch):
    def no_network():
        raise AssertionError("connectivity must not be probed offline")

    monkeypatch.setattr(orchestrate, "test_connectivity", no_network)

    summary = run_audit(hub_repo, fake_checker, offline=True)

    assert summary["success"] is True
    assert fake_checker.calls == []
    assert not (hub_repo / "cache.json").exists()


class TestSharedUrlChecker:

    def test_failed_check_evicts_cached_entry(self, tmp_path):
        url = "https://github.com/acme/gone"
        cache = LinkCache(tmp_path / "cache.json")
        cache.mark_checked(url, 200)

        checker = SharedUrlChecker(cache, use_cache=False, check=FakeChecker(broken={url}))
        result = checker(url)

        assert not result.ok
        assert not cache.is_fresh(url)
        assert checker(url) is result


class TestMain:

    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setattr(orchestrate, "setup_logging", lambda verbose: None)

    def cli(self, repo, *extra):
        args = ["--repo-root", str(repo), "--manifest", str(repo / "metadata" / "components.json"),
                "--offline", "--no-report", *extra]
        with pytest.raises(SystemExit) as exc:
            main(args)
        return exc.value.code

    def test_clean_offline_run(self, hub_repo):
        assert self.cli(hub_repo) == 0

    def test_broken_reference_exit_code(self, hub_repo):
        (hub_repo / "docs" / "stages.md").write_text("# Stages\n\n## Load\n\n[gone](missing.md)\n")
        assert self.cli(hub_repo) == 1

    def test_docs_option_limits_documents(self, hub_repo):
        (hub_repo / "docs" / "stages.md").write_text("# Stages\n\n## Load\n\n[gone](missing.md)\n")
        assert self.cli(hub_repo, "--docs", "README.md") == 0

    def test_docs_without_hub_document_skip_component_check(self, hub_repo):
        assert self.cli(hub_repo, "--docs", "docs/stages.md") == 0

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main(["--manifest", str(tmp_path / "nope.json"), "--offline"])
        assert exc.value.code == 2

    def test_invalid_workers(self, hub_repo):
        assert self.cli(hub_repo, "--max-workers", "0") == 2
