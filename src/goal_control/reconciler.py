import logging
from collections.abc import Callable
from typing import Any, Optional

from .client import ContainerInfo, RuntimeClient
from .errors import ContainerNotFound, GoalError, ImageMismatchError, RuntimeClientError
from .models import ContainerGoal

logger = logging.getLogger(__name__)


class Reconciler:
    """Drives a single container to its goal.

    Steps run strictly in order: inspect, optional removal, create when absent, start.
    """

    def __init__(self, client: RuntimeClient):
        self.client = client

    def apply(self, goal: ContainerGoal) -> None:
        current = self.measure_actual_state(goal)

        if current is not None and goal.force_remove_existing:
            logger.info("Force removing existing container %s", goal.name)
            self._call("remove", goal, self.client.remove, current.id, force=True, remove_volumes=False)
            current = None

        if current is not None and current.running:
            if self._check_running(goal, current):
                logger.debug("Container %s already satisfies its goal", goal.name)
                return
            # the stale container was removed, a new one is needed
            current = None

        if current is None:
            logger.info("Creating container %s from %s", goal.name, goal.container_config.image)
            self._call(
                "create",
                goal,
                self.client.create_with_pull,
                goal.container_config,
                goal.name,
                goal.auth_config,
                host_config=goal.host_config,
            )
            current = self.measure_actual_state(goal)
            if current is None:
                raise RuntimeClientError("inspect", goal.name, ContainerNotFound(goal.name))

        logger.info("Starting container %s (%s)", goal.name, current.id[:12])
        self._call("start", goal, self.client.start, current.id, goal.host_config)

    def measure_actual_state(self, goal: ContainerGoal) -> Optional[ContainerInfo]:
        try:
            return self._call("inspect", goal, self.client.inspect, goal.name)
        except ContainerNotFound:
            return None

    def _check_running(self, goal: ContainerGoal, current: ContainerInfo) -> bool:
        """Returns True when the running container is acceptable as is.

        A mismatching container is removed when the goal allows it and False is
        returned, otherwise ImageMismatchError is raised without touching it.
        """
        if not goal.check_running_image:
            return True

        desired_image = goal.container_config.image
        desired_image_id = self._call(
            "resolve image", goal, self.client.resolve_image_identity, desired_image, goal.auth_config
        )
        if current.image == desired_image_id:
            return True

        if not goal.remove_existing:
            raise ImageMismatchError(goal.name, current.image, desired_image, desired_image_id)

        logger.warning(
            "Container %s runs image %s instead of %s, replacing it", goal.name, current.image, desired_image_id
        )
        self._call("remove", goal, self.client.remove, current.id, force=True, remove_volumes=False)
        return False

    def _call(self, operation: str, goal: ContainerGoal, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except GoalError:
            raise
        except Exception as e:
            raise RuntimeClientError(operation, goal.name, e) from e


def apply(goal: ContainerGoal, client: RuntimeClient) -> None:
    Reconciler(client).apply(goal)
