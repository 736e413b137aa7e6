import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import docker
from docker.errors import ImageNotFound, NotFound

from .errors import ContainerNotFound
from .models import AuthConfig, ContainerConfig, HostConfig
from .settings import AppSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerInfo:
    id: str
    name: str
    running: bool
    image: str


class RuntimeClient(Protocol):
    """Operations the reconciler needs from a container runtime.

    Implementations are shared by the containers of a round and must be thread-safe.
    """

    def inspect(self, name: str) -> ContainerInfo:
        """Raises ContainerNotFound when no container has this name."""
        ...

    def remove(self, container_id: str, force: bool, remove_volumes: bool) -> None: ...

    def create_with_pull(
        self,
        config: ContainerConfig,
        name: str,
        auth_config: Optional[AuthConfig] = None,
        host_config: Optional[HostConfig] = None,
    ) -> str: ...

    def start(self, container_id: str, host_config: Optional[HostConfig] = None) -> None: ...

    def resolve_image_identity(self, image_ref: str, auth_config: Optional[AuthConfig] = None) -> str: ...


class DockerRuntimeClient:
    """RuntimeClient backed by the docker SDK."""

    def __init__(self, client: docker.DockerClient):
        self.client = client

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "DockerRuntimeClient":
        if settings.DOCKER_BASE_URL:
            return cls(docker.DockerClient(base_url=settings.DOCKER_BASE_URL))
        return cls(docker.from_env())

    def inspect(self, name: str) -> ContainerInfo:
        try:
            container = self.client.containers.get(name)
        except NotFound as e:
            raise ContainerNotFound(name) from e
        # containers.get also resolves id prefixes
        if container.name != name:
            raise ContainerNotFound(name)
        return ContainerInfo(
            id=container.id,
            name=container.name,
            running=bool(container.attrs["State"]["Running"]),
            image=container.attrs["Image"],
        )

    def remove(self, container_id: str, force: bool, remove_volumes: bool) -> None:
        self.client.api.remove_container(container_id, v=remove_volumes, force=force)

    def create_with_pull(
        self,
        config: ContainerConfig,
        name: str,
        auth_config: Optional[AuthConfig] = None,
        host_config: Optional[HostConfig] = None,
    ) -> str:
        # engines reject host config on start, so it is bound here
        kwargs = config.to_docker()
        if host_config is not None:
            kwargs["host_config"] = self.client.api.create_host_config(**host_config.to_docker())
            if host_config.port_bindings:
                kwargs["ports"] = host_config.exposed_ports()

        try:
            response = self.client.api.create_container(name=name, **kwargs)
        except ImageNotFound:
            self._pull(config.image, auth_config)
            response = self.client.api.create_container(name=name, **kwargs)
        return response["Id"]

    def start(self, container_id: str, host_config: Optional[HostConfig] = None) -> None:
        self.client.api.start(container_id)

    def resolve_image_identity(self, image_ref: str, auth_config: Optional[AuthConfig] = None) -> str:
        try:
            return self.client.images.get(image_ref).id
        except ImageNotFound:
            return self._pull(image_ref, auth_config).id

    def _pull(self, image_ref: str, auth_config: Optional[AuthConfig]):
        logger.info("Pulling image %s", image_ref)
        auth = auth_config.to_docker() if auth_config else None
        return self.client.images.pull(image_ref, auth_config=auth)
