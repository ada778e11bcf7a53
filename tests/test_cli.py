from __future__ import annotations

import json
from contextlib import nullcontext

import yaml
from click.testing import CliRunner
from conftest import FakePage, mock_http

from lawscrape import cli as cli_module
from lawscrape.cli import cli
from lawscrape.runner import load_sources
from lawscrape.runner import run as real_run


def test_sources_lists_jurisdictions():
    result = CliRunner().invoke(cli, ["sources"])
    assert result.exit_code == 0
    assert "newyork: New York Consolidated Laws [drilldown] BSC, LLC" in result.output
    assert "delaware: Delaware Code [delaware_pdf] DE" in result.output


def test_unknown_source_exits_1():
    result = CliRunner().invoke(cli, ["scrape", "--source", "atlantis"])
    assert result.exit_code == 1
    assert "Unknown source" in result.output


def test_compact(tmp_path):
    log = tmp_path / "texas.jsonl"
    log.write_text('{"section": "1.001"}\n{"section": "1.002"}\n', encoding="utf-8")
    result = CliRunner().invoke(cli, ["compact", str(log)])
    assert result.exit_code == 0
    assert "Wrote 2 records" in result.output
    assert json.loads((tmp_path / "texas.json").read_text(encoding="utf-8")) == [
        {"section": "1.001"},
        {"section": "1.002"},
    ]


def test_scrape_writes_output_and_manifest(monkeypatch, tmp_path, ny_pages):
    config = load_sources()
    newyork = config["jurisdictions"]["newyork"]
    newyork["codes"] = [c for c in newyork["codes"] if c["code"] == "BSC"]
    config["jurisdictions"] = {"newyork": newyork}
    config_path = tmp_path / "sources.yaml"
    config_path.write_text(yaml.safe_dump(config), encoding="utf-8")

    page = FakePage(ny_pages)
    http = mock_http(tmp_path, lambda request: None)

    def fake_run(specs, settings):
        assert settings.delays.inter_navigation == 0
        return real_run(specs, settings, page_factory=lambda: nullcontext(page), http=http)

    monkeypatch.setattr(cli_module, "run", fake_run)
    out = tmp_path / "out"
    result = CliRunner().invoke(
        cli, ["scrape", "--config", str(config_path), "--output-dir", str(out), "--no-delay"]
    )

    assert result.exit_code == 0, result.output
    assert "OK: Business Corporation Law (BSC): 2 documents, 1 skipped" in result.output
    assert "Done: 2 documents, 1 succeeded, 0 failed" in result.output
    assert len(json.loads((out / "newyork.json").read_text(encoding="utf-8"))) == 2
    manifest = json.loads((out / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["stats"]["documents"] == 2
    assert manifest["sources"][0]["stats"]["skipped_by_kind"] == {"navigation_timeout": 1}
