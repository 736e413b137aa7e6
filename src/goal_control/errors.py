class GoalError(Exception):
    """Base class for every failure raised while reaching a container goal."""


class GoalConfigError(GoalError, ValueError):
    """A goal could not be built or a goal set is malformed."""


class DuplicateGoalError(GoalConfigError):
    def __init__(self, name: str):
        super().__init__(f"container {name!r} is declared more than once")
        self.name = name


class UnknownLinkError(GoalConfigError):
    """A container references a container that is not part of the goal set."""

    def __init__(self, container: str, link: str):
        super().__init__(f"{container} expects unknown link {link}")
        self.container = container
        self.link = link


class ContainerNotFound(GoalError):
    """Raised by a runtime client when the named container does not exist."""


class RuntimeClientError(GoalError):
    def __init__(self, operation: str, container: str, cause: Exception):
        super().__init__(f"{operation} failed for container {container!r}: {cause}")
        self.operation = operation
        self.container = container


class ImageMismatchError(GoalError):
    """A running container uses another image and may not be replaced."""

    def __init__(self, container: str, running_image: str, desired_image: str, desired_image_id: str):
        super().__init__(
            f"container {container!r} running with image {running_image!r} "
            f"but desired image is {desired_image!r} with id {desired_image_id!r}"
        )
        self.container = container
        self.running_image = running_image
        self.desired_image = desired_image
        self.desired_image_id = desired_image_id


class ConvergenceError(GoalError):
    """No pending container could be started in a round.

    `blocked` maps every pending container to the dependencies that never started.
    """

    def __init__(self, blocked: dict[str, frozenset[str]]):
        detail = "; ".join(f"{name} waits on {', '.join(sorted(deps))}" for name, deps in sorted(blocked.items()))
        super().__init__(f"dependency graph cannot make progress: {detail}")
        self.blocked = blocked
