import re
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import GoalConfigError

CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")
VOLUME_MODES = {"ro", "rw"}


def link_target(reference: str) -> str:
    """Returns the container name of a `name[:alias]` or `name[:mode]` reference."""
    return reference.split(":", 1)[0]


def _link_alias(reference: str) -> Optional[str]:
    _, _, alias = reference.partition(":")
    return alias or None


def read_only(value: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    if value is None:
        return None
    return MappingProxyType(dict(value))


def stringify_values(value: Any) -> Any:
    """YAML writes `PORT: 5432` or `DEBUG: true`, docker wants strings."""
    if not isinstance(value, Mapping):
        return value
    return {
        k: (str(v).lower() if isinstance(v, bool) else str(v)) if isinstance(v, (bool, int, float)) else v
        for k, v in value.items()
    }


class ContainerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    image: str = Field(..., description="Image reference the container is created from")
    command: Optional[str | tuple[str, ...]] = None
    entrypoint: Optional[str | tuple[str, ...]] = None
    environment: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    labels: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    working_dir: Optional[str] = None
    user: Optional[str] = None

    @field_validator("environment", "labels", mode="before")
    @classmethod
    def stringify_scalars(cls, v: Any) -> Any:
        return stringify_values(v)

    @field_validator("environment", "labels")
    @classmethod
    def freeze_mappings(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        return read_only(v)

    @field_validator("image")
    @classmethod
    def validate_image_tag(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("image must not be empty")
        # registry hosts may carry a port, only the last path segment holds the tag
        if "@" in v or ":" in v.rsplit("/", 1)[-1]:
            return v
        return f"{v}:latest"

    def to_docker(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"image": self.image}
        for key in ("command", "entrypoint"):
            value = getattr(self, key)
            if value is not None:
                kwargs[key] = value if isinstance(value, str) else list(value)
        if self.environment:
            kwargs["environment"] = dict(self.environment)
        if self.labels:
            kwargs["labels"] = dict(self.labels)
        if self.working_dir:
            kwargs["working_dir"] = self.working_dir
        if self.user:
            kwargs["user"] = self.user
        return kwargs


class HostConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    links: tuple[str, ...] = Field((), description="Links to other goals as name[:alias]")
    volumes_from: tuple[str, ...] = Field((), description="Volume sources as name[:ro|rw]")
    port_bindings: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    binds: tuple[str, ...] = ()
    network_mode: Optional[str] = None
    restart_policy: Optional[Mapping[str, Any]] = None

    @field_validator("port_bindings", "restart_policy")
    @classmethod
    def freeze_mappings(cls, v: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
        return read_only(v)

    @field_validator("links")
    @classmethod
    def validate_links(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for link in v:
            target, sep, alias = link.partition(":")
            if not target or (sep and not alias) or ":" in alias:
                raise ValueError(f"malformed link {link!r}, expected name[:alias]")
        return v

    @field_validator("volumes_from")
    @classmethod
    def validate_volumes_from(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for source in v:
            target, sep, mode = source.partition(":")
            if not target or (sep and mode not in VOLUME_MODES):
                raise ValueError(f"malformed volumes_from {source!r}, expected name[:ro|rw]")
        return v

    def dependencies(self) -> frozenset[str]:
        return frozenset(link_target(ref) for ref in (*self.links, *self.volumes_from))

    def exposed_ports(self) -> list[tuple[int, str]]:
        ports = []
        for key in self.port_bindings:
            port, _, proto = str(key).partition("/")
            ports.append((int(port), proto or "tcp"))
        return ports

    def to_docker(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.links:
            kwargs["links"] = [(link_target(link), _link_alias(link)) for link in self.links]
        if self.volumes_from:
            kwargs["volumes_from"] = list(self.volumes_from)
        if self.port_bindings:
            kwargs["port_bindings"] = dict(self.port_bindings)
        if self.binds:
            kwargs["binds"] = list(self.binds)
        if self.network_mode:
            kwargs["network_mode"] = self.network_mode
        if self.restart_policy:
            kwargs["restart_policy"] = dict(self.restart_policy)
        return kwargs


class AuthConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    username: Optional[str] = None
    password: Optional[str] = Field(None, repr=False)
    email: Optional[str] = None
    serveraddress: Optional[str] = None

    def to_docker(self) -> dict[str, str]:
        return self.model_dump(exclude_none=True)


class ContainerGoal(BaseModel):
    """Desired state of one container. Only the goal, nothing is applied until reconciled."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., description="Container name, unique within a goal set")
    container_config: ContainerConfig
    host_config: Optional[HostConfig] = None
    remove_existing: bool = Field(False, description="Replace a running container with a different image")
    force_remove_existing: bool = Field(False, description="Always replace an existing container")
    check_running_image: bool = Field(False, description="Compare the running image with the desired one")
    auth_config: Optional[AuthConfig] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not CONTAINER_NAME_RE.match(v):
            raise ValueError(f"invalid container name {v!r}")
        return v

    def dependencies(self) -> frozenset[str]:
        if self.host_config is None:
            return frozenset()
        return self.host_config.dependencies()


GoalOption = Callable[[dict[str, Any]], None]


def new_container(*options: GoalOption) -> ContainerGoal:
    """Builds a ContainerGoal by applying options in order.

    The first option that raises aborts the build, no partial goal is returned.
    """
    draft: dict[str, Any] = {}
    for option in options:
        option(draft)
    if "name" not in draft:
        raise GoalConfigError("container goal requires a name")
    if "container_config" not in draft:
        raise GoalConfigError(f"container {draft['name']!r} requires a container config")
    try:
        return ContainerGoal.model_validate(draft)
    except ValidationError as e:
        raise GoalConfigError(f"invalid container goal {draft['name']!r}: {e}") from e


def _coerce(model: type[BaseModel], value: Any, what: str) -> BaseModel:
    if isinstance(value, model):
        return value
    if not isinstance(value, Mapping):
        raise GoalConfigError(f"{what} must be a {model.__name__} or a mapping, got {type(value).__name__}")
    try:
        return model.model_validate(dict(value))
    except ValidationError as e:
        raise GoalConfigError(f"invalid {what}: {e}") from e


def container_name(name: str) -> GoalOption:
    def option(draft: dict[str, Any]) -> None:
        if not name or not CONTAINER_NAME_RE.match(name):
            raise GoalConfigError(f"invalid container name {name!r}")
        draft["name"] = name

    return option


def remove_existing(draft: dict[str, Any]) -> None:
    """Allows removing a running container whose image differs from the goal.

    Without it such a container is left alone and reconciliation fails.
    """
    draft["remove_existing"] = True


def force_remove_existing(draft: dict[str, Any]) -> None:
    """Removes any existing container, even one that already matches the goal."""
    draft["force_remove_existing"] = True


def check_running_image(draft: dict[str, Any]) -> None:
    draft["check_running_image"] = True


def container_config(config: ContainerConfig | Mapping[str, Any]) -> GoalOption:
    def option(draft: dict[str, Any]) -> None:
        draft["container_config"] = _coerce(ContainerConfig, config, "container config")

    return option


def host_config(config: HostConfig | Mapping[str, Any]) -> GoalOption:
    def option(draft: dict[str, Any]) -> None:
        draft["host_config"] = _coerce(HostConfig, config, "host config")

    return option


def auth_config(auth: AuthConfig | Mapping[str, Any]) -> GoalOption:
    def option(draft: dict[str, Any]) -> None:
        draft["auth_config"] = _coerce(AuthConfig, auth, "auth config")

    return option
