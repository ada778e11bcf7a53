"""CLI entry point for the legal site scraper."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from lawscrape.ingestion.base import SourceState
from lawscrape.runner import RunSettings, build_specs, load_sources, run
from lawscrape.storage.manifest import write_manifest
from lawscrape.storage.sink import compact as compact_lines


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool):
    """Scrape legal and legislative sites into JSON files."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.option("--source", "-s", "sources", multiple=True, help="Jurisdiction slug (repeatable); default is all")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Sources YAML file")
@click.option("--output-dir", type=click.Path(file_okay=False), default=None, help="Output directory")
@click.option("--no-delay", is_flag=True, help="Disable pauses between browser actions")
@click.option("--headful", is_flag=True, help="Show the browser window")
def scrape(sources: tuple[str, ...], config_path: str | None, output_dir: str | None, no_delay: bool, headful: bool):
    """Scrape the configured jurisdictions."""
    config = load_sources(Path(config_path) if config_path else None)
    try:
        specs = build_specs(config, sources)
    except KeyError:
        available = ", ".join(sorted(config["jurisdictions"]))
        click.echo(f"Error: Unknown source in {', '.join(sources)}. Available: {available}", err=True)
        sys.exit(1)

    settings = RunSettings.from_config(
        config,
        output_dir=Path(output_dir) if output_dir else None,
        no_delay=no_delay,
        headful=headful,
    )
    click.echo(f"Processing {len(specs)} source(s)...")

    result = run(specs, settings)
    write_manifest(result, settings.output_dir)

    click.echo(f"\n{'='*60}")
    for report in result.reports:
        status = "OK" if report.state is SourceState.DONE else "FAIL"
        click.echo(
            f"  {status}: {report.spec.label}: {len(report.documents)} documents, "
            f"{len(report.failures)} skipped"
        )
    click.echo(
        f"Done: {len(result.documents)} documents, "
        f"{len(result.reports) - len(result.failed_sources)} succeeded, "
        f"{len(result.failed_sources)} failed"
    )
    for report in result.failed_sources:
        click.echo(f"  FAIL: {report.spec.label}: {report.error}", err=True)


@cli.command("sources")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Sources YAML file")
def list_sources(config_path: str | None):
    """List configured jurisdictions and their codes."""
    config = load_sources(Path(config_path) if config_path else None)
    specs = build_specs(config)
    for slug, jurisdiction in config["jurisdictions"].items():
        codes = [s.code for s in specs if s.jurisdiction == slug]
        click.echo(f"{slug}: {jurisdiction['name']} [{jurisdiction['kind']}] {', '.join(codes)}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Target JSON file (default: PATH with .json suffix)")
def compact(path: str, output: str | None):
    """Compact a JSON-lines store into a JSON array."""
    source = Path(path)
    target = Path(output) if output else source.with_suffix(".json")
    count = compact_lines(source, target)
    click.echo(f"Wrote {count} records to {target}")


if __name__ == "__main__":
    cli()
