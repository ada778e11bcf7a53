"""Summarize a run into manifest.json."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from ..ingestion.base import RunResult, SourceReport

logger = logging.getLogger(__name__)


def build_source_entry(report: SourceReport) -> dict:
    """Manifest entry for one SourceSpec."""
    failures_by_kind: dict[str, int] = {}
    for failure in report.failures:
        failures_by_kind[failure.kind] = failures_by_kind.get(failure.kind, 0) + 1

    return {
        "jurisdiction": report.spec.jurisdiction,
        "name": report.spec.name,
        "code": report.spec.code,
        "state": report.state.value,
        "error": report.error,
        "stats": {
            "documents": len(report.documents),
            "skipped": len(report.failures),
            "skipped_by_kind": failures_by_kind,
        },
    }


def build_manifest(result: RunResult) -> dict:
    """Build manifest.json content from a finished run."""
    return {
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "outputs": {slug: str(path) for slug, path in result.outputs.items()},
        "stats": {
            "sources": len(result.reports),
            "failed_sources": len(result.failed_sources),
            "documents": len(result.documents),
            "skipped": sum(len(r.failures) for r in result.reports),
        },
        "sources": [build_source_entry(r) for r in result.reports],
    }


def write_manifest(result: RunResult, output_dir: Path) -> Path:
    """Write manifest.json for a run into ``output_dir``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    manifest = build_manifest(result)
    manifest_path = output_dir / "manifest.json"
    manifest_path.write_text(json.dumps(manifest, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Wrote %s", manifest_path)
    return manifest_path
