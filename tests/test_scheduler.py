import threading
import time

import pytest

from goal_control import models
from goal_control.errors import ConvergenceError, DuplicateGoalError, RuntimeClientError, UnknownLinkError
from goal_control.scheduler import apply_graph, dependency_graph, plan_rounds


def _index(calls, call):
    return calls.index(call)


def test_dependency_starts_in_earlier_round(client, goal_factory):
    goals = [goal_factory("b", links=["a:alias"]), goal_factory("a")]

    rounds = apply_graph(client, goals)

    assert rounds == [["a"], ["b"]]
    # b is not even inspected before a has started
    assert _index(client.calls, ("start", "a")) < _index(client.calls, ("inspect", "b"))


def test_layers_of_a_deeper_graph(client, goal_factory):
    goals = [
        goal_factory("web", links=["api", "cache"]),
        goal_factory("api", links=["db"]),
        goal_factory("db"),
        goal_factory("cache"),
    ]

    rounds = apply_graph(client, goals)

    assert rounds == [["db", "cache"], ["api"], ["web"]]
    assert all(client.containers[name].running for name in ("web", "api", "db", "cache"))


def test_volumes_from_is_a_dependency(client):
    goals = [
        models.new_container(
            models.container_name("app"),
            models.container_config({"image": "nginx:1.27"}),
            models.host_config({"volumes_from": ["data:ro"]}),
        ),
        models.new_container(models.container_name("data"), models.container_config({"image": "nginx:1.27"})),
    ]

    assert apply_graph(client, goals) == [["data"], ["app"]]


def test_unknown_link_fails_before_any_call(client, goal_factory):
    goals = [goal_factory("a"), goal_factory("b", links=["missing:m"])]

    with pytest.raises(UnknownLinkError) as exc_info:
        apply_graph(client, goals)

    assert exc_info.value.container == "b"
    assert exc_info.value.link == "missing:m"
    assert client.calls == []


def test_duplicate_names_fail_before_any_call(client, goal_factory):
    with pytest.raises(DuplicateGoalError):
        apply_graph(client, [goal_factory("a"), goal_factory("a", "nginx:1.25")])
    assert client.calls == []


def test_cycle_fails_with_convergence_error(client, goal_factory):
    goals = [goal_factory("x", links=["y"]), goal_factory("y", links=["x"])]

    with pytest.raises(ConvergenceError) as exc_info:
        apply_graph(client, goals)

    assert exc_info.value.blocked == {"x": frozenset({"y"}), "y": frozenset({"x"})}
    assert client.calls == []


def test_cycle_detected_after_independent_round(client, goal_factory):
    goals = [goal_factory("a"), goal_factory("x", links=["y", "a"]), goal_factory("y", links=["x"])]

    with pytest.raises(ConvergenceError) as exc_info:
        apply_graph(client, goals)

    assert exc_info.value.blocked == {"x": frozenset({"y"}), "y": frozenset({"x"})}
    assert client.containers["a"].running is True
    assert "x" not in client.containers


def test_self_link_never_converges(client, goal_factory):
    with pytest.raises(ConvergenceError):
        apply_graph(client, [goal_factory("a", links=["a"])])


def test_round_runs_containers_concurrently(client, goal_factory):
    barrier = threading.Barrier(3, timeout=5)
    for name in ("a", "b", "c"):
        client.hooks[("inspect", name)] = barrier.wait

    rounds = apply_graph(client, [goal_factory("a"), goal_factory("b"), goal_factory("c")])

    assert rounds == [["a", "b", "c"]]


def test_max_workers_limits_pool_but_not_result(client, goal_factory):
    goals = [goal_factory("a"), goal_factory("b"), goal_factory("c", links=["a", "b"])]

    assert apply_graph(client, goals, max_workers=1) == [["a", "b"], ["c"]]


def test_failing_round_lets_siblings_finish_and_stops(client, goal_factory):
    client.fail("create", "a", RuntimeError("boom"))
    client.hooks[("start", "slow")] = lambda: time.sleep(0.2)
    goals = [goal_factory("a"), goal_factory("slow"), goal_factory("b", links=["a"]), goal_factory("c", links=["slow"])]

    with pytest.raises(RuntimeClientError) as exc_info:
        apply_graph(client, goals)

    assert exc_info.value.container == "a"
    assert client.containers["slow"].running is True
    assert not any(call[1] in {"b", "c"} for call in client.calls)


def test_first_reported_error_wins(client, goal_factory):
    client.fail("create", "fast", RuntimeError("fast failure"))
    client.hooks[("create", "late")] = lambda: time.sleep(0.3)
    client.fail("create", "late", RuntimeError("late failure"))

    with pytest.raises(RuntimeClientError, match="fast failure"):
        apply_graph(client, [goal_factory("late"), goal_factory("fast")])


def test_dependency_graph_and_plan(goal_factory):
    goals = [goal_factory("web", links=["db:database"]), goal_factory("db")]

    assert dependency_graph(goals) == {"web": frozenset({"db"}), "db": frozenset()}
    assert plan_rounds(goals) == [["db"], ["web"]]


def test_empty_goal_set(client):
    assert apply_graph(client, []) == []
    assert client.calls == []
