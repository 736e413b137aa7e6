"""Reconciles a whole goal set, respecting links between containers.

Containers are started in rounds. A round holds every pending container whose
dependencies all started in earlier rounds, and its containers are reconciled
concurrently. The next round is admitted only once the whole round succeeded,
so a container never starts before the containers it links to are running.
"""

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional

from .client import RuntimeClient
from .errors import ConvergenceError, DuplicateGoalError, UnknownLinkError
from .models import ContainerGoal, link_target
from .reconciler import Reconciler

logger = logging.getLogger(__name__)


def dependency_graph(goals: Iterable[ContainerGoal]) -> dict[str, frozenset[str]]:
    """Maps every goal name to the names it depends on.

    Raises DuplicateGoalError or UnknownLinkError for a goal set that is not closed.
    """
    goals = list(goals)
    known: set[str] = set()
    for goal in goals:
        if goal.name in known:
            raise DuplicateGoalError(goal.name)
        known.add(goal.name)

    graph: dict[str, frozenset[str]] = {}
    for goal in goals:
        references = ()
        if goal.host_config is not None:
            references = (*goal.host_config.links, *goal.host_config.volumes_from)
        for reference in references:
            if link_target(reference) not in known:
                raise UnknownLinkError(goal.name, reference)
        graph[goal.name] = goal.dependencies()
    return graph


def apply_graph(
    client: RuntimeClient,
    goals: Iterable[ContainerGoal],
    max_workers: Optional[int] = None,
) -> list[list[str]]:
    """Reconciles all goals and returns the container names of each round.

    The first failure of a round is raised once every container of that round
    finished, and no later round is started.
    """
    goals = list(goals)
    graph = dependency_graph(goals)
    reconciler = Reconciler(client)

    started: set[str] = set()
    pending = goals
    rounds: list[list[str]] = []

    while pending:
        ready, next_round = _partition(pending, graph, started)
        names = [g.name for g in ready]
        logger.info("Round %d: reconciling %s", len(rounds) + 1, ", ".join(names))
        _run_round(reconciler, ready, max_workers)

        started.update(names)
        rounds.append(names)
        pending = next_round

    return rounds


def plan_rounds(goals: Iterable[ContainerGoal]) -> list[list[str]]:
    """Returns the rounds apply_graph would run if every container succeeded."""
    goals = list(goals)
    graph = dependency_graph(goals)
    started: set[str] = set()
    rounds: list[list[str]] = []
    pending = goals
    while pending:
        ready, pending = _partition(pending, graph, started)
        names = [g.name for g in ready]
        started.update(names)
        rounds.append(names)
    return rounds


def _partition(
    pending: list[ContainerGoal], graph: dict[str, frozenset[str]], started: set[str]
) -> tuple[list[ContainerGoal], list[ContainerGoal]]:
    ready = [g for g in pending if graph[g.name] <= started]
    deferred = [g for g in pending if not graph[g.name] <= started]
    if not ready:
        raise ConvergenceError({g.name: graph[g.name] - started for g in deferred})
    return ready, deferred


def _run_round(reconciler: Reconciler, ready: list[ContainerGoal], max_workers: Optional[int]) -> None:
    workers = len(ready) if max_workers is None else max(1, min(max_workers, len(ready)))
    first_error: Optional[BaseException] = None

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="goal") as executor:
        futures = {executor.submit(reconciler.apply, goal): goal for goal in ready}
        for future in as_completed(futures):
            error = future.exception()
            if error is None:
                continue
            logger.error("Container %s failed: %s", futures[future].name, error)
            if first_error is None:
                first_error = error

    if first_error is not None:
        raise first_error
