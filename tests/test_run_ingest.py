"""Tests for the ``run_ingest`` operator CLI."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

import main as system_module
import run_ingest
from src.errors import SourceNotFoundError
from src.ingest.pipeline import RunSummary


def _summary(source_id: Optional[int] = 1) -> RunSummary:
    return RunSummary(source_id=source_id, total=3, inserted=2, skipped=1, state="finished")


@dataclass
class FakeSystem:
    """Stands in for :class:`main.IngestSystem` and records every call."""

    calls: List[tuple] = field(default_factory=list)
    fail_source: bool = False
    shut_down: bool = False

    def seed_sources(self) -> int:
        self.calls.append(("seed",))
        return 4

    def block_url(self, url: str, reason: Optional[str] = None) -> bool:
        self.calls.append(("block", url, reason))
        return True

    def list_sources(self) -> List[Any]:
        return [
            SimpleNamespace(id=1, fetch_mode="rss", allowed=True, name="Feed One"),
            SimpleNamespace(id=2, fetch_mode="scrape", allowed=False, name="Feed Two"),
        ]

    def run_source(self, source_id: int, limit=None, *, with_job: bool = False) -> RunSummary:
        self.calls.append(("source", source_id, limit, with_job))
        if self.fail_source:
            raise SourceNotFoundError(source_id)
        return _summary(source_id)

    def run_all(self, per_source_limit=None, *, with_job: bool = False) -> RunSummary:
        self.calls.append(("all", per_source_limit, with_job))
        summary = RunSummary(state="finished")
        summary.add(_summary(1))
        return summary

    def reclassify(self) -> int:
        return 7

    def backfill_images(self):
        return SimpleNamespace(checked=5, found=2)

    def shutdown(self) -> None:
        self.shut_down = True


@pytest.fixture
def system(monkeypatch: pytest.MonkeyPatch) -> FakeSystem:
    fake = FakeSystem()
    monkeypatch.setattr(system_module, "create_system", lambda: fake)
    return fake


def test_parser_defaults_and_exclusive_targets() -> None:
    parser = run_ingest.build_parser()
    args = parser.parse_args(["--source", "3", "--limit", "25", "--job"])
    assert (args.source, args.limit, args.job, args.all) == (3, 25, True, False)
    assert parser.parse_args([]).per_source_limit is None
    with pytest.raises(SystemExit):
        parser.parse_args(["--source", "3", "--all"])


def test_source_run_prints_summary(system: FakeSystem, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_ingest.main(["--source", "3", "--limit", "10"]) == 0
    out = capsys.readouterr().out
    assert "state=finished job=-" in out
    assert "total=3, inserted=2, updated=0, skipped=1, filtered=0, errors=0" in out
    assert system.calls == [("source", 3, 10, False)]
    assert system.shut_down


def test_all_sources_json_output(system: FakeSystem, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_ingest.main(["--all", "--per-source-limit", "5", "--job", "--json"]) == 0
    payload: Dict[str, Any] = json.loads(capsys.readouterr().out)
    assert payload["inserted"] == 2
    assert payload["sources"][0]["source_id"] == 1
    assert system.calls == [("all", 5, True)]


def test_operator_helpers(system: FakeSystem, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_ingest.main(
        [
            "--seed-sources",
            "--block",
            "https://example.com/nfl/story",
            "--list-sources",
            "--reclassify",
            "--backfill-images",
        ]
    )
    out = capsys.readouterr().out
    assert exit_code == 0
    assert "4 sources seeded" in out
    assert "blocked" in out
    assert "Feed One" in out and "denied" in out
    assert "7 articles reclassified" in out
    assert "images: checked=5 found=2" in out
    assert ("block", "https://example.com/nfl/story", "cli") in system.calls


def test_ingest_errors_exit_non_zero(system: FakeSystem, capsys: pytest.CaptureFixture[str]) -> None:
    system.fail_source = True
    assert run_ingest.main(["--source", "99"]) == 1
    assert "Source 99 not found" in capsys.readouterr().err
    assert system.shut_down


def test_quiet_sets_log_level(system: FakeSystem, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GRIDIRON__LOGGING__LEVEL", "INFO")
    assert run_ingest.main(["--quiet"]) == 0
    assert os.environ["GRIDIRON__LOGGING__LEVEL"] == "WARNING"
