"""CLI entry point for the API load-test suite."""

import json
import sys

import click

from src.analyzer import (
    NoResultFiles,
    ResultsError,
    analyze_directory,
    format_report,
)
from src.config import get_settings
from src.environments import (
    ConfigurationError,
    default_registry,
    format_duration,
    load_registry,
)
from src.generator import build_options, options_to_json, write_config
from src.logs import setup_logging
from src.scenarios import SCENARIOS, get_scenario, scenario_names


def _registry(config_path, settings):
    path = config_path or settings.environments_file
    if path:
        return load_registry(path)
    return default_registry()


@click.group()
@click.option(
    "--log-level",
    default=None,
    help="Log level for diagnostics on stderr (default from LOADTEST_LOG_LEVEL).",
)
@click.pass_context
def main(ctx, log_level):
    """API load-test suite -- environment profiles, scenarios, and results analysis."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)
    ctx.obj = settings


@main.command()
@click.option(
    "--results-dir",
    default=None,
    type=click.Path(file_okay=False),
    help="Directory holding JSON result files (default from LOADTEST_RESULTS_DIR).",
)
@click.pass_obj
def analyze(settings, results_dir):
    """Summarize every result file in the results directory."""
    directory = results_dir or settings.results_dir
    try:
        result = analyze_directory(directory)
    except NoResultFiles as exc:
        click.echo(f"No results to analyze: {exc}")
        click.echo("Run a test with JSON output first, for example:")
        click.echo(f"  k6 run --out json={directory}/test-results.json <script>")
        return
    except ResultsError as exc:
        click.echo(f"Error: {exc}", err=True)
        click.echo("Run some tests with JSON output first.", err=True)
        sys.exit(1)

    click.echo(format_report(result))


@main.command()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="Optional YAML or JSON file with alternate environment profiles.",
)
@click.pass_obj
def envs(settings, config_path):
    """List the available environment profiles."""
    try:
        registry = _registry(config_path, settings)
    except ConfigurationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    for profile in registry:
        click.echo(
            f"{profile.name:<12} {profile.base_url}  "
            f"peak={profile.peak_target} "
            f"duration={format_duration(profile.total_duration_seconds)}"
        )


@main.command()
@click.argument("name")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="Optional YAML or JSON file with alternate environment profiles.",
)
@click.pass_obj
def show(settings, name, config_path):
    """Print one environment profile as JSON."""
    try:
        profile = _registry(config_path, settings).get(name)
    except ConfigurationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    output = {
        "name": profile.name,
        "base_url": profile.base_url,
        "timeout_ms": profile.timeout_ms,
        "thresholds": {
            metric: [t.expression for t in items]
            for metric, items in profile.thresholds.items()
        },
        "stages": [
            {"duration": format_duration(s.duration_seconds), "target": s.target}
            for s in profile.stages
        ],
    }
    if profile.origins:
        output["origins"] = dict(profile.origins)
    click.echo(json.dumps(output, indent=2))


@main.command()
def scenarios():
    """List the available scenarios."""
    for name in scenario_names():
        scenario = SCENARIOS[name]
        click.echo(f"{name:<16} {scenario.test_type:<16} {scenario.description}")


@main.command()
@click.argument("name")
@click.option("--env", "env_name", default=None, help="Environment profile to apply.")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="Optional YAML or JSON file with alternate environment profiles.",
)
@click.option(
    "--out",
    default=None,
    type=click.Path(),
    help="Optional output path (.json, .yaml, .yml). Prints JSON to stdout if omitted.",
)
@click.pass_obj
def export(settings, name, env_name, config_path, out):
    """Export a scenario as load-engine options."""
    try:
        scenario = get_scenario(name)
        profile = _registry(config_path, settings).get(env_name) if env_name else None
        options = build_options(scenario, profile)
        if out:
            write_config(options, out)
    except (ConfigurationError, OSError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if out:
        click.echo(f"Options written to {out}")
    else:
        click.echo(options_to_json(options))


if __name__ == "__main__":
    main()
