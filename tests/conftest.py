import threading

import pytest

from goal_control import models
from goal_control.client import ContainerInfo
from goal_control.errors import ContainerNotFound


class FakeRuntimeClient:
    """In-memory RuntimeClient recording every call, safe to share across a round."""

    def __init__(self, images: dict[str, str] | None = None):
        self.lock = threading.Lock()
        self.containers: dict[str, ContainerInfo] = {}
        self.images = images or {}
        self.calls: list[tuple] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self.hooks: dict[tuple[str, str], callable] = {}
        self._next_id = 0

    def add_container(self, name: str, image: str, running: bool = True) -> ContainerInfo:
        with self.lock:
            self._next_id += 1
            info = ContainerInfo(id=f"{name}-id-{self._next_id}", name=name, running=running, image=image)
            self.containers[name] = info
            return info

    def fail(self, operation: str, name: str, error: Exception) -> None:
        self.failures[(operation, name)] = error

    def mutating_calls(self, name: str | None = None) -> list[tuple]:
        return [c for c in self.calls if c[0] in {"remove", "create", "start"} and (name is None or c[1] == name)]

    def _record(self, operation: str, name: str, *args) -> None:
        with self.lock:
            self.calls.append((operation, name, *args))
        hook = self.hooks.get((operation, name))
        if hook is not None:
            hook()
        error = self.failures.get((operation, name))
        if error is not None:
            raise error

    def _name_of(self, container_id: str) -> str:
        with self.lock:
            for info in self.containers.values():
                if info.id == container_id:
                    return info.name
        return container_id

    def inspect(self, name):
        self._record("inspect", name)
        with self.lock:
            if name not in self.containers:
                raise ContainerNotFound(name)
            return self.containers[name]

    def remove(self, container_id, force, remove_volumes):
        name = self._name_of(container_id)
        self._record("remove", name, force, remove_volumes)
        with self.lock:
            self.containers.pop(name, None)

    def create_with_pull(self, config, name, auth_config=None, host_config=None):
        self._record("create", name, config.image)
        return self.add_container(name, self.images.get(config.image, f"sha256:{config.image}"), running=False).id

    def start(self, container_id, host_config=None):
        name = self._name_of(container_id)
        self._record("start", name)
        with self.lock:
            info = self.containers[name]
            self.containers[name] = ContainerInfo(id=info.id, name=name, running=True, image=info.image)

    def resolve_image_identity(self, image_ref, auth_config=None):
        self._record("resolve", image_ref)
        return self.images.get(image_ref, f"sha256:{image_ref}")


@pytest.fixture
def client():
    return FakeRuntimeClient(images={"nginx:1.27": "sha256:nginx127", "nginx:1.25": "sha256:nginx125"})


def make_goal(name, image="nginx:1.27", links=(), *options):
    opts = [models.container_name(name), models.container_config({"image": image})]
    if links:
        opts.append(models.host_config({"links": list(links)}))
    return models.new_container(*opts, *options)


@pytest.fixture
def goal_factory():
    return make_goal
