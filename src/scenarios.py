"""Scenario catalogue: requests, checks, ramp stages, and thresholds per test type."""

import json
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from src.environments import ConfigurationError, parse_duration, parse_threshold
from src.models import Check, RequestSpec, Response, Scenario, Stage, Threshold


PUBLIC_ORIGINS: Mapping[str, str] = MappingProxyType({
    "jsonplaceholder": "https://jsonplaceholder.typicode.com",
    "httpbin": "https://httpbin.org",
    "reqres": "https://reqres.in/api",
    "catfacts": "https://catfact.ninja",
})


# -- check factories ----------------------------------------------------------


def status_is(expected: int) -> Callable[[Response], bool]:
    return lambda r: r.status == expected


def status_between(low: int, high: int) -> Callable[[Response], bool]:
    """Status in the half-open range [low, high)."""
    return lambda r: low <= r.status < high


def duration_below(limit_ms: float) -> Callable[[Response], bool]:
    return lambda r: r.duration_ms < limit_ms


def body_not_empty(r: Response) -> bool:
    return bool(r.body)


def is_json(r: Response) -> bool:
    try:
        json.loads(r.body or "")
    except ValueError:
        return False
    return True


def json_matches(predicate: Callable[[Any], Any]) -> Callable[[Response], bool]:
    """Check the decoded body with ``predicate``.

    A body that is not JSON, or whose shape makes ``predicate`` blow up,
    fails the check.
    """
    def check(r: Response) -> bool:
        try:
            return bool(predicate(json.loads(r.body or "")))
        except (ValueError, KeyError, IndexError, TypeError, AttributeError):
            return False
    return check


def resource_id_matches(r: Response) -> bool:
    """The body's ``id`` equals the id at the end of the request URL."""
    try:
        expected = int(r.url.rstrip("/").rsplit("/", 1)[-1])
    except ValueError:
        return False
    return json_matches(lambda d: d["id"] == expected)(r)


def run_checks(checks: Iterable[Check], response: Response) -> Dict[str, bool]:
    """Evaluate each check against ``response``, keyed by check name."""
    return {check.name: bool(check.predicate(response)) for check in checks}


def resolve_url(
    request: RequestSpec,
    origins: Optional[Mapping[str, str]] = None,
    resource_id: Optional[int] = None,
) -> str:
    """Join a request's path onto its API origin.

    ``origins`` overrides the public origin per API name. ``resource_id``
    fills an ``{id}`` placeholder; without it the template is kept.
    """
    origin = (origins or {}).get(request.api) or PUBLIC_ORIGINS.get(request.api)
    if origin is None:
        raise ConfigurationError(f"unknown api: {request.api!r}")
    path = request.path
    if resource_id is not None:
        path = path.replace("{id}", str(resource_id))
    return origin.rstrip("/") + path


def walk_requests(requests: Iterable[RequestSpec]) -> Iterator[RequestSpec]:
    """Yield each request followed by its follow-ups, depth first."""
    for request in requests:
        yield request
        yield from walk_requests(request.follow_ups)


# -- catalogue ----------------------------------------------------------------


def _stages(*pairs: Tuple[str, int]) -> Tuple[Stage, ...]:
    return tuple(Stage(duration_seconds=parse_duration(d), target=t) for d, t in pairs)


def _thresholds(raw: Dict[str, List[str]]) -> Mapping[str, Tuple[Threshold, ...]]:
    return MappingProxyType({
        metric: tuple(parse_threshold(metric, expr) for expr in exprs)
        for metric, exprs in raw.items()
    })


def _is_nonempty_list(data) -> bool:
    return isinstance(data, list) and len(data) > 0


_NEW_POST = {
    "title": "Load Test Post",
    "body": "This is a test post created during load testing",
    "userId": 1,
}
_NEW_USER = {"name": "Load Test User", "job": "Performance Tester"}
_ECHO = {"test": "data"}


def _basic() -> Scenario:
    return Scenario(
        name="basic",
        test_type="sample",
        api="jsonplaceholder",
        description="Read and create posts on JSONPlaceholder.",
        stages=_stages(("30s", 10), ("1m", 10), ("30s", 0)),
        thresholds=_thresholds({
            "http_req_duration": ["p(95)<500"],
            "http_req_failed": ["rate<0.05"],
        }),
        requests=(
            RequestSpec("GET", "jsonplaceholder", "/posts", checks=(
                Check("GET /posts status is 200", status_is(200)),
                Check("GET /posts response time < 500ms", duration_below(500)),
                Check("GET /posts has posts", json_matches(_is_nonempty_list)),
            )),
            RequestSpec("GET", "jsonplaceholder", "/posts/1", checks=(
                Check("GET /posts/1 status is 200", status_is(200)),
                Check("GET /posts/1 response time < 300ms", duration_below(300)),
                Check("GET /posts/1 has correct structure", json_matches(
                    lambda p: p["id"] == 1 and p["title"] and p["body"] and p["userId"]
                )),
            )),
            RequestSpec("POST", "jsonplaceholder", "/posts", payload=_NEW_POST, checks=(
                Check("POST /posts status is 201", status_is(201)),
                Check("POST /posts response time < 1000ms", duration_below(1000)),
                Check("POST /posts returns created post", json_matches(
                    lambda p: p["title"] == _NEW_POST["title"] and p["id"]
                )),
            )),
        ),
        think_time=(1.0, 1.0),
    )


def _smoke() -> Scenario:
    return Scenario(
        name="smoke",
        test_type="smoke",
        api="multiple",
        description="One request per public API to confirm each is reachable.",
        stages=_stages(("30s", 1), ("30s", 1), ("30s", 0)),
        thresholds=_thresholds({
            "http_req_duration": ["p(95)<2000"],
            "http_req_failed": ["rate<0.01"],
        }),
        requests=(
            RequestSpec("GET", "jsonplaceholder", "/posts/1", checks=(
                Check("JSONPlaceholder: status is 200", status_is(200)),
                Check("JSONPlaceholder: response time < 2s", duration_below(2000)),
                Check("JSONPlaceholder: has post data", json_matches(
                    lambda p: p["id"] and p["title"] and p["body"]
                )),
            )),
            RequestSpec("GET", "httpbin", "/get", checks=(
                Check("httpbin: GET status is 200", status_is(200)),
                Check("httpbin: GET response time < 2s", duration_below(2000)),
                Check("httpbin: GET returns correct data", json_matches(
                    lambda d: d["url"].endswith("/get")
                )),
            )),
            RequestSpec("GET", "reqres", "/users/1", checks=(
                Check("ReqRes: status is 200", status_is(200)),
                Check("ReqRes: response time < 2s", duration_below(2000)),
                Check("ReqRes: has user data", json_matches(lambda d: d["data"]["id"] == 1)),
            )),
            RequestSpec("GET", "catfacts", "/fact", checks=(
                Check("Cat Facts: status is 200", status_is(200)),
                Check("Cat Facts: response time < 2s", duration_below(2000)),
                Check("Cat Facts: has fact data", json_matches(
                    lambda f: f["fact"] and f["length"]
                )),
            )),
        ),
        think_time=(0.0, 0.0),
    )


def _load() -> Scenario:
    checks = (
        Check("status is 200", status_is(200)),
        Check("response time < 1000ms", duration_below(1000)),
        Check("response has data", json_matches(_is_nonempty_list)),
    )
    by_id = (
        Check("specific resource status is 200", status_is(200)),
        Check("specific resource response time < 500ms", duration_below(500)),
        Check("specific resource has ID", resource_id_matches),
    )
    return Scenario(
        name="load",
        test_type="load",
        api="jsonplaceholder",
        description="Sustained reads across JSONPlaceholder collections.",
        stages=_stages(("2m", 100), ("5m", 100), ("2m", 0)),
        thresholds=_thresholds({
            "http_req_duration": ["p(95)<1000"],
            "http_req_failed": ["rate<0.1"],
            "http_reqs": ["rate>50"],
        }),
        requests=tuple(
            RequestSpec("GET", "jsonplaceholder", path, checks=checks, follow_ups=(
                RequestSpec(
                    "GET", "jsonplaceholder", path + "/{id}", checks=by_id, id_range=(1, 10),
                ),
            ))
            for path in ("/posts", "/comments", "/albums", "/photos", "/todos", "/users")
        ),
        selection="random",
        think_time=(1.0, 3.0),
    )


def _stress() -> Scenario:
    checks = (
        Check("stress test status is successful", status_between(200, 400)),
        Check("stress test response time < 5s", duration_below(5000)),
        Check("stress test response body exists", body_not_empty),
    )
    return Scenario(
        name="stress",
        test_type="stress",
        api="httpbin",
        description="Mixed HTTP methods on httpbin ramped past expected capacity.",
        stages=_stages(
            ("2m", 100), ("5m", 200), ("2m", 300), ("5m", 300),
            ("2m", 200), ("5m", 100), ("2m", 0),
        ),
        thresholds=_thresholds({
            "http_req_duration": ["p(95)<5000"],
            "http_req_failed": ["rate<0.2"],
        }),
        requests=(
            RequestSpec("GET", "httpbin", "/get", checks=checks),
            RequestSpec("POST", "httpbin", "/post", payload=_ECHO, checks=checks),
            RequestSpec("PUT", "httpbin", "/put", payload={"update": "data"}, checks=checks),
            RequestSpec("DELETE", "httpbin", "/delete", checks=checks),
            RequestSpec("GET", "httpbin", "/delay/1", checks=checks),
        ),
        selection="random",
        think_time=(0.0, 3.0),
    )


def _spike() -> Scenario:
    checks = (
        Check("spike test: request completed", lambda r: r.status != 0),
        Check("spike test: response received", lambda r: r.body is not None),
    )
    return Scenario(
        name="spike",
        test_type="spike",
        api="jsonplaceholder",
        description="Sudden jump to 500 virtual users and back.",
        stages=_stages(("1m", 10), ("30s", 500), ("1m", 10), ("30s", 0)),
        thresholds=_thresholds({
            "http_req_duration": ["p(95)<10000"],
            "http_req_failed": ["rate<0.5"],
        }),
        requests=tuple(
            RequestSpec("GET", "jsonplaceholder", path, checks=checks)
            for path in ("/posts", "/users", "/todos")
        ),
        selection="random",
        think_time=(0.1, 0.1),
    )


def _generic_checks(api: str) -> Tuple[Check, ...]:
    return (
        Check(f"{api}: status is 200", status_is(200)),
        Check(f"{api}: response time OK", duration_below(2000)),
        Check(f"{api}: has content", body_not_empty),
        Check(f"{api}: is JSON", is_json),
    )


_COMPARISON_ENDPOINTS = {
    "jsonplaceholder": ("/posts", "/users", "/comments", "/todos"),
    "httpbin": ("/get", "/uuid", "/json", "/headers"),
    "reqres": ("/users", "/users/2", "/unknown", "/unknown/2"),
    "catfacts": ("/fact", "/breeds", "/facts"),
}


def _api_comparison() -> Scenario:
    # API-specific requests sent after any read of that API
    follow_ups = {
        "jsonplaceholder": (
            RequestSpec("POST", "jsonplaceholder", "/posts", payload=_NEW_POST, checks=(
                Check("JSONPlaceholder POST: created", status_is(201)),
                Check("JSONPlaceholder POST: returns ID", json_matches(
                    lambda p: p["id"] is not None
                )),
            )),
        ),
        "httpbin": (
            RequestSpec("POST", "httpbin", "/post", payload=_ECHO, checks=(
                Check("HTTPBin POST: success", status_is(200)),
                Check("HTTPBin POST: echoes data", json_matches(
                    lambda b: b["json"]["test"] == "data"
                )),
            )),
            RequestSpec("PUT", "httpbin", "/put", payload=_ECHO, checks=(
                Check("HTTPBin PUT: success", status_is(200)),
            )),
        ),
        "reqres": (
            RequestSpec("POST", "reqres", "/users", payload=_NEW_USER, checks=(
                Check("ReqRes CREATE: success", status_is(201)),
                Check("ReqRes CREATE: returns user", json_matches(
                    lambda u: u["name"] == _NEW_USER["name"] and u["id"]
                )),
            )),
        ),
        "catfacts": (
            RequestSpec("GET", "catfacts", "/fact", checks=(
                Check("CatFacts: has fact", json_matches(lambda f: len(f["fact"]) > 10)),
                Check("CatFacts: has length", json_matches(lambda f: f["length"] > 0)),
            )),
        ),
    }
    reads = [
        RequestSpec("GET", api, path, checks=_generic_checks(api), follow_ups=follow_ups[api])
        for api, paths in _COMPARISON_ENDPOINTS.items()
        for path in paths
    ]
    return Scenario(
        name="api-comparison",
        test_type="api-comparison",
        api="multiple",
        description="Random requests spread over all four public APIs.",
        stages=_stages(("1m", 20), ("3m", 20), ("1m", 0)),
        thresholds=_thresholds({
            "http_req_duration": ["p(95)<2000"],
            "http_req_failed": ["rate<0.1"],
        }),
        requests=tuple(reads),
        selection="random",
        think_time=(1.0, 1.0),
    )


SCENARIOS: Mapping[str, Scenario] = MappingProxyType({
    s.name: s
    for s in (_basic(), _smoke(), _load(), _stress(), _spike(), _api_comparison())
})


def scenario_names() -> List[str]:
    return sorted(SCENARIOS)


def get_scenario(name: str) -> Scenario:
    try:
        return SCENARIOS[name]
    except KeyError:
        raise ConfigurationError(
            f"unknown scenario: {name!r} (available: {', '.join(scenario_names())})"
        ) from None
