"""Environment profiles: compiled-in defaults, validation, and lookup."""

import json
import os
import re
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Tuple

import structlog
import yaml

from src.models import EnvironmentProfile, Stage, Threshold

logger = structlog.get_logger()


class ConfigurationError(Exception):
    """Raised when an environment profile or scenario is malformed."""


class UnknownEnvironment(ConfigurationError):
    """Raised when a profile name is not registered."""


LOCAL_ORIGIN = "http://localhost:8001"

DEFAULT_ENVIRONMENTS: Dict[str, dict] = {
    "development": {
        "base_url": "https://jsonplaceholder.typicode.com",
        "timeout_ms": 30000,
        "thresholds": {
            "http_req_duration": ["p(95)<500"],
            "http_req_failed": ["rate<0.05"],
            "http_reqs": ["rate>10"],
        },
        "stages": [
            {"duration": "1m", "target": 10},
            {"duration": "2m", "target": 10},
            {"duration": "1m", "target": 0},
        ],
    },
    "staging": {
        "base_url": "https://httpbin.org",
        "timeout_ms": 30000,
        "thresholds": {
            "http_req_duration": ["p(95)<1000"],
            "http_req_failed": ["rate<0.1"],
            "http_reqs": ["rate>50"],
        },
        "stages": [
            {"duration": "2m", "target": 50},
            {"duration": "5m", "target": 50},
            {"duration": "2m", "target": 0},
        ],
    },
    "production": {
        "base_url": "https://reqres.in/api",
        "timeout_ms": 30000,
        "thresholds": {
            "http_req_duration": ["p(95)<2000"],
            "http_req_failed": ["rate<0.01"],
            "http_reqs": ["rate>100"],
        },
        "stages": [
            {"duration": "5m", "target": 100},
            {"duration": "10m", "target": 100},
            {"duration": "5m", "target": 0},
        ],
    },
    "smoke": {
        "base_url": "https://catfact.ninja",
        "timeout_ms": 30000,
        "thresholds": {
            "http_req_duration": ["p(95)<2000"],
            "http_req_failed": ["rate<0.01"],
        },
        "stages": [
            {"duration": "30s", "target": 1},
            {"duration": "30s", "target": 1},
            {"duration": "30s", "target": 0},
        ],
    },
    "stress": {
        "base_url": "https://httpbin.org",
        "timeout_ms": 30000,
        "thresholds": {
            "http_req_duration": ["p(95)<5000"],
            "http_req_failed": ["rate<0.2"],
        },
        "stages": [
            {"duration": "2m", "target": 100},
            {"duration": "5m", "target": 200},
            {"duration": "2m", "target": 300},
            {"duration": "5m", "target": 300},
            {"duration": "2m", "target": 200},
            {"duration": "5m", "target": 100},
            {"duration": "2m", "target": 0},
        ],
    },
    "spike": {
        "base_url": "https://jsonplaceholder.typicode.com",
        "timeout_ms": 30000,
        "thresholds": {
            "http_req_duration": ["p(95)<10000"],
            "http_req_failed": ["rate<0.5"],
        },
        "stages": [
            {"duration": "1m", "target": 10},
            {"duration": "30s", "target": 500},
            {"duration": "1m", "target": 10},
            {"duration": "30s", "target": 0},
        ],
    },
    # Points every API at mock_service running on localhost.
    "local": {
        "base_url": LOCAL_ORIGIN,
        "timeout_ms": 5000,
        "thresholds": {
            "http_req_duration": ["p(95)<200"],
            "http_req_failed": ["rate<0.01"],
        },
        "stages": [
            {"duration": "10s", "target": 5},
            {"duration": "20s", "target": 5},
            {"duration": "10s", "target": 0},
        ],
        "origins": {
            "jsonplaceholder": LOCAL_ORIGIN + "/jsonplaceholder",
            "httpbin": LOCAL_ORIGIN + "/httpbin",
            "reqres": LOCAL_ORIGIN + "/reqres/api",
            "catfacts": LOCAL_ORIGIN + "/catfacts",
        },
    },
}


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_FULL = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|h|m|s))+")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}

_THRESHOLD = re.compile(
    r"\s*([A-Za-z_]+(?:\(\d+(?:\.\d+)?\))?)\s*(<=|>=|==|!=|<|>)\s*(-?\d+(?:\.\d+)?)\s*"
)


def parse_duration(text: str) -> float:
    """Parse an engine duration string ("30s", "2m30s", "250ms") into seconds.

    Raises:
        ConfigurationError: If the string is not a valid duration.
    """
    if not isinstance(text, str) or not _DURATION_FULL.fullmatch(text.strip()):
        raise ConfigurationError(f"invalid duration: {text!r}")
    return sum(
        float(amount) * _UNIT_SECONDS[unit]
        for amount, unit in _DURATION_PART.findall(text.strip())
    )


def format_duration(seconds: float) -> str:
    """Render seconds back into the engine's duration notation."""
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    parts = []
    for amount, unit in ((hours, "h"), (minutes, "m"), (secs, "s"), (millis, "ms")):
        if amount:
            parts.append(f"{amount}{unit}")
    return "".join(parts) or "0s"


def parse_threshold(metric: str, expression: str) -> Threshold:
    """Split a threshold expression such as ``p(95)<500`` into its parts.

    Raises:
        ConfigurationError: If the expression cannot be parsed.
    """
    match = _THRESHOLD.fullmatch(expression) if isinstance(expression, str) else None
    if match is None:
        raise ConfigurationError(
            f"invalid threshold for {metric}: {expression!r}"
        )
    statistic, comparator, bound = match.groups()
    return Threshold(
        metric=metric,
        statistic=statistic,
        comparator=comparator,
        bound=float(bound),
        expression=expression.strip(),
    )


def build_profile(name: str, raw: Mapping) -> EnvironmentProfile:
    """Construct and validate an EnvironmentProfile from a raw mapping.

    Every problem found is reported in a single ConfigurationError so a
    broken profile fails at load time, before any run starts.
    """
    errors: List[str] = []

    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"environment '{name}' must be a mapping")

    base_url = raw.get("base_url")
    if not base_url or not isinstance(base_url, str):
        errors.append("'base_url' is required and must be a non-empty string")

    timeout_ms = raw.get("timeout_ms", 30000)
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
        errors.append("'timeout_ms' must be a positive integer")

    thresholds = parse_thresholds(raw.get("thresholds"), errors)
    stages = parse_stages(raw.get("stages"), errors)

    origins = raw.get("origins", {})
    if not isinstance(origins, Mapping):
        errors.append("'origins' must be a mapping")
        origins = {}

    if errors:
        raise ConfigurationError(
            f"environment '{name}' is invalid:\n  - " + "\n  - ".join(errors)
        )

    return EnvironmentProfile(
        name=name,
        base_url=base_url.rstrip("/"),
        timeout_ms=timeout_ms,
        thresholds=thresholds,
        stages=stages,
        origins=MappingProxyType({str(k): str(v).rstrip("/") for k, v in origins.items()}),
    )


def parse_stages(raw, errors: List[str]) -> Tuple[Stage, ...]:
    if not isinstance(raw, list) or not raw:
        errors.append("'stages' is required and must be a non-empty list")
        return ()
    stages = []
    for i, item in enumerate(raw):
        if not isinstance(item, Mapping):
            errors.append(f"stages[{i}] must be a mapping")
            continue
        try:
            duration = parse_duration(item.get("duration"))
        except ConfigurationError as exc:
            errors.append(f"stages[{i}].duration: {exc}")
            continue
        target = item.get("target")
        if isinstance(target, bool) or not isinstance(target, int) or target < 0:
            errors.append(f"stages[{i}].target must be a non-negative integer")
            continue
        if duration <= 0:
            errors.append(f"stages[{i}].duration must be positive")
            continue
        stages.append(Stage(duration_seconds=duration, target=target))
    return tuple(stages)


def parse_thresholds(raw, errors: List[str]) -> Mapping[str, Tuple[Threshold, ...]]:
    if not isinstance(raw, Mapping) or not raw:
        errors.append("'thresholds' is required and must be a non-empty mapping")
        return MappingProxyType({})
    parsed = {}
    for metric, expressions in raw.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        if not isinstance(expressions, list) or not expressions:
            errors.append(f"thresholds.{metric} must be a non-empty list")
            continue
        items = []
        for expression in expressions:
            try:
                items.append(parse_threshold(metric, expression))
            except ConfigurationError as exc:
                errors.append(str(exc))
        parsed[metric] = tuple(items)
    return MappingProxyType(parsed)


class EnvironmentRegistry:
    """A fixed, read-only set of named environment profiles."""

    def __init__(self, profiles: Iterable[EnvironmentProfile]):
        by_name: Dict[str, EnvironmentProfile] = {}
        for profile in profiles:
            if profile.name in by_name:
                raise ConfigurationError(f"duplicate environment: {profile.name}")
            by_name[profile.name] = profile
        self._profiles = MappingProxyType(by_name)

    @classmethod
    def from_mapping(cls, raw: Mapping) -> "EnvironmentRegistry":
        return cls(build_profile(str(name), body) for name, body in raw.items())

    def get(self, name: str) -> EnvironmentProfile:
        """Return the profile registered under ``name``.

        Raises:
            UnknownEnvironment: If no such profile exists.
        """
        try:
            return self._profiles[name]
        except KeyError:
            raise UnknownEnvironment(
                f"unknown environment: {name!r} (available: {', '.join(self.names())})"
            ) from None

    def names(self) -> List[str]:
        return sorted(self._profiles)

    def __contains__(self, name) -> bool:
        return name in self._profiles

    def __iter__(self) -> Iterator[EnvironmentProfile]:
        return (self._profiles[name] for name in self.names())

    def __len__(self) -> int:
        return len(self._profiles)


@lru_cache(maxsize=None)
def default_registry() -> EnvironmentRegistry:
    """Build the compiled-in registry once per process."""
    registry = EnvironmentRegistry.from_mapping(DEFAULT_ENVIRONMENTS)
    logger.debug("environment_registry_built", source="builtin", count=len(registry))
    return registry


def load_registry(path: str) -> EnvironmentRegistry:
    """Load a registry of profiles from a YAML or JSON file.

    The file holds a top-level mapping of environment name to profile.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or invalid.
    """
    if not os.path.isfile(path):
        raise ConfigurationError(f"environments file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, "r", encoding="utf-8") as f:
            if ext in (".yaml", ".yml"):
                raw = yaml.safe_load(f)
            elif ext == ".json":
                raw = json.load(f)
            else:
                raise ConfigurationError(
                    f"unsupported file extension: {ext} (expected .yaml, .yml, or .json)"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"failed to parse {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"cannot read {path}: {exc}") from exc

    if not isinstance(raw, dict) or not raw:
        raise ConfigurationError("environments file must be a non-empty mapping at the top level")

    registry = EnvironmentRegistry.from_mapping(raw)
    logger.debug("environment_registry_built", source=path, count=len(registry))
    return registry
