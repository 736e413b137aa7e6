from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import models
from .errors import GoalConfigError
from .models import ContainerGoal

CONTAINER_KEYS = ("image", "command", "entrypoint", "environment", "labels", "working_dir", "user")
HOST_KEYS = ("links", "volumes_from", "port_bindings", "binds", "network_mode", "restart_policy")


class GoalEntry(BaseModel):
    """One container as written in the goal file."""

    model_config = ConfigDict(extra="forbid")

    name: str
    image: str
    command: Optional[str | list[str]] = None
    entrypoint: Optional[str | list[str]] = None
    environment: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    working_dir: Optional[str] = None
    user: Optional[str] = None

    links: list[str] = Field(default_factory=list)
    volumes_from: list[str] = Field(default_factory=list)
    port_bindings: dict[str, Any] = Field(default_factory=dict)
    binds: list[str] = Field(default_factory=list)
    network_mode: Optional[str] = None
    restart_policy: Optional[dict[str, Any]] = None

    remove_existing: bool = False
    force_remove_existing: bool = False
    check_running_image: bool = False
    auth: Optional[dict[str, str]] = None

    @field_validator("environment", "labels", mode="before")
    @classmethod
    def stringify_scalars(cls, v: Any) -> Any:
        return models.stringify_values(v)

    def to_goal(self) -> ContainerGoal:
        fields = self.model_dump(exclude_unset=True)
        options = [
            models.container_name(self.name),
            models.container_config({k: fields[k] for k in CONTAINER_KEYS if k in fields}),
        ]
        host = {k: fields[k] for k in HOST_KEYS if k in fields}
        if host:
            options.append(models.host_config(host))
        if self.auth:
            options.append(models.auth_config(self.auth))
        if self.remove_existing:
            options.append(models.remove_existing)
        if self.force_remove_existing:
            options.append(models.force_remove_existing)
        if self.check_running_image:
            options.append(models.check_running_image)
        return models.new_container(*options)


class GoalFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    containers: list[GoalEntry]


def load_goals(path: Path) -> list[ContainerGoal]:
    """Loads and validates the goal set declared in a YAML file."""
    if not path.exists():
        raise GoalConfigError(f"{path} not found")

    try:
        with open(path) as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise GoalConfigError(f"{path} is not valid YAML: {e}") from e

    try:
        goal_file = GoalFile.model_validate(raw_config or {})
    except ValidationError as e:
        raise GoalConfigError(f"{path} is not a valid goal file: {e}") from e

    return [entry.to_goal() for entry in goal_file.containers]
