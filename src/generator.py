"""Export scenarios as load-engine options (JSON or YAML)."""

import json
import os
from typing import Dict, Optional

import structlog
import yaml

from src.environments import ConfigurationError, format_duration
from src.models import EnvironmentProfile, RequestSpec, Scenario
from src.scenarios import resolve_url

logger = structlog.get_logger()


def build_options(scenario: Scenario, profile: Optional[EnvironmentProfile] = None) -> Dict:
    """Build the options document the engine is started with.

    When ``profile`` is given its stages and thresholds replace the
    scenario's own, and its origins re-base the request URLs.
    """
    stages = profile.stages if profile is not None else scenario.stages
    thresholds = profile.thresholds if profile is not None else scenario.thresholds
    origins = profile.origins if profile is not None else None

    options = {
        "stages": [
            {"duration": format_duration(s.duration_seconds), "target": s.target}
            for s in stages
        ],
        "thresholds": {
            metric: [t.expression for t in items]
            for metric, items in thresholds.items()
        },
        "tags": {"testType": scenario.test_type, "api": scenario.api},
        "scenario": {
            "name": scenario.name,
            "description": scenario.description,
            "selection": scenario.selection,
            "think_time": {"min": scenario.think_time[0], "max": scenario.think_time[1]},
            "requests": [_request_options(r, origins) for r in scenario.requests],
        },
    }
    if profile is not None:
        options["environment"] = profile.name
        options["timeout"] = f"{profile.timeout_ms}ms"
    return options


def _request_options(request: RequestSpec, origins) -> Dict:
    entry = {
        "method": request.method,
        "url": resolve_url(request, origins),
        "body": request.payload,
        "checks": [c.name for c in request.checks],
        "follow_ups": [_request_options(f, origins) for f in request.follow_ups],
    }
    if request.id_range is not None:
        entry["id_range"] = list(request.id_range)
    return entry


def options_to_json(options: Dict) -> str:
    return json.dumps(options, indent=2, sort_keys=True)


def write_config(options: Dict, out_path: str) -> None:
    """Write options to ``out_path``; the extension picks JSON or YAML."""
    ext = os.path.splitext(out_path)[1].lower()
    if ext not in (".json", ".yaml", ".yml"):
        raise ConfigurationError(
            f"unsupported output extension: {ext} (expected .json, .yaml, or .yml)"
        )
    parent = os.path.dirname(out_path)
    if parent and not os.path.isdir(parent):
        os.makedirs(parent, exist_ok=True)

    with open(out_path, "w", encoding="utf-8") as f:
        if ext == ".json":
            f.write(options_to_json(options) + "\n")
        else:
            yaml.safe_dump(options, f, sort_keys=True)
    logger.info("options_written", path=out_path)
