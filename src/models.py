"""Data models for environment profiles, scenarios, and aggregated results."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Stage:
    duration_seconds: float
    target: int  # concurrent virtual users at the end of the stage


@dataclass(frozen=True)
class Threshold:
    metric: str
    statistic: str  # e.g. "p(95)", "rate", "avg"
    comparator: str  # "<", "<=", ">", ">=", "==", "!="
    bound: float
    expression: str  # original text, e.g. "p(95)<500"


@dataclass(frozen=True)
class EnvironmentProfile:
    name: str
    base_url: str
    timeout_ms: int
    thresholds: Mapping[str, Tuple[Threshold, ...]]
    stages: Tuple[Stage, ...]
    origins: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def total_duration_seconds(self) -> float:
        return sum(stage.duration_seconds for stage in self.stages)

    @property
    def peak_target(self) -> int:
        return max((stage.target for stage in self.stages), default=0)


@dataclass(frozen=True)
class Response:
    """The parts of an HTTP response that checks look at."""

    status: int
    body: Optional[str]
    duration_ms: float
    url: str = ""


@dataclass(frozen=True)
class Check:
    name: str
    predicate: Callable[[Response], bool]


@dataclass(frozen=True)
class RequestSpec:
    method: str
    api: str  # key into the origin map
    path: str
    payload: Optional[Dict[str, Any]] = None
    checks: Tuple[Check, ...] = ()
    id_range: Optional[Tuple[int, int]] = None  # fills "{id}" in path, inclusive
    follow_ups: Tuple["RequestSpec", ...] = ()  # sent after this request, same iteration


@dataclass(frozen=True)
class Scenario:
    name: str
    test_type: str  # value of the testType tag
    api: str
    description: str
    stages: Tuple[Stage, ...]
    thresholds: Mapping[str, Tuple[Threshold, ...]]
    requests: Tuple[RequestSpec, ...] = ()
    selection: str = "all"  # "all", or "random" to pick one top-level request
    think_time: Tuple[float, float] = (1.0, 1.0)  # seconds, (min, max)


@dataclass
class MetricStats:
    count: int = 0
    total: float = 0.0
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    mean: Optional[float] = None


@dataclass
class FileReport:
    name: str
    total_lines: int = 0
    skipped_lines: int = 0
    test_type: str = "unknown"
    metrics: Dict[str, MetricStats] = field(default_factory=dict)
    total_requests: float = 0.0
    failure_rate: float = 0.0  # percent
    checks_passed: float = 0.0
    checks_total: int = 0
    check_pass_rate: float = 0.0  # percent
    error: Optional[str] = None

    @property
    def durations(self) -> MetricStats:
        return self.metrics.get("http_req_duration", MetricStats())


@dataclass
class AnalysisResult:
    directory: str
    files: List[FileReport] = field(default_factory=list)
