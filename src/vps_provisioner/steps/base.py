from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Optional, Sequence

from ..host import HostState


class RegistryError(ValueError):
    """Raised when a set of steps cannot be ordered."""


class Step(ABC):
    """One idempotent unit of host configuration.

    ``is_satisfied`` must not change the host; ``apply`` establishes the
    desired state and returns a short detail string for the report.
    """

    name: str = ""
    description: str = ""

    def __init__(
        self,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        depends_on: Sequence[str] = (),
    ):
        if name:
            self.name = name
        if description:
            self.description = description
        if not self.name:
            raise ValueError(f"{type(self).__name__} must define a name")
        self.depends_on: tuple[str, ...] = tuple(depends_on)

    @abstractmethod
    def is_satisfied(self, host: HostState) -> bool:
        """Return True when the desired state already holds."""

    @abstractmethod
    def apply(self, host: HostState) -> str:
        """Perform the step against ``host``."""

    def skip_detail(self, host: HostState) -> str:
        return "already satisfied"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class StepRegistry:
    """Ordered collection of uniquely named steps."""

    def __init__(self, steps: Iterable[Step] = ()):
        self._steps: dict[str, Step] = {}
        for step in steps:
            self.add(step)

    def add(self, step: Step) -> None:
        if step.name in self._steps:
            raise RegistryError(f"duplicate step name '{step.name}'")
        self._steps[step.name] = step

    def get(self, name: str) -> Step:
        return self._steps[name]

    def names(self) -> list[str]:
        return list(self._steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)

    def ordered(self) -> list[Step]:
        """Steps in dependency order, otherwise in declaration order."""
        for step in self._steps.values():
            unknown = [dep for dep in step.depends_on if dep not in self._steps]
            if unknown:
                raise RegistryError(
                    f"step '{step.name}' depends on unknown step(s): {', '.join(unknown)}"
                )

        in_degree = {name: len(set(step.depends_on)) for name, step in self._steps.items()}
        ordered: list[str] = []
        ready = [name for name in self._steps if in_degree[name] == 0]
        while ready:
            current = ready.pop(0)
            ordered.append(current)
            released = []
            for name, step in self._steps.items():
                if current in step.depends_on:
                    in_degree[name] -= 1
                    if in_degree[name] == 0:
                        released.append(name)
            # Keep declaration order among newly released and already ready steps.
            position = {name: idx for idx, name in enumerate(self._steps)}
            ready = sorted(ready + released, key=position.__getitem__)

        if len(ordered) != len(self._steps):
            stuck = [name for name in self._steps if name not in ordered]
            raise RegistryError(f"dependency cycle between steps: {', '.join(stuck)}")
        return [self._steps[name] for name in ordered]
