"""
A small build plan for declaring resources in dependency order.

Each step names the handles it consumes and the single handle it produces.
The plan is checked before anything runs, so a step can never read a handle
that an earlier step has not produced yet.
"""
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping, Tuple

from .exceptions import DuplicateHandleError, UnresolvedHandleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    provides: str
    declare: Callable[..., Any]
    requires: Tuple[str, ...] = ()


class BuildPlan:
    """Ordered list of declare steps."""

    def __init__(self, name: str = "plan") -> None:
        self.name = name
        self._steps = []

    def add(self, provides: str, declare: Callable[..., Any], requires=()) -> "BuildPlan":
        self._steps.append(Step(provides=provides, declare=declare, requires=tuple(requires)))
        return self

    @property
    def steps(self) -> Tuple[Step, ...]:
        return tuple(self._steps)

    def validate(self) -> None:
        produced = set()
        for step in self._steps:
            for handle in step.requires:
                if handle not in produced:
                    raise UnresolvedHandleError(step.provides, handle)
            if step.provides in produced:
                raise DuplicateHandleError(step.provides, step.provides)
            produced.add(step.provides)

    def execute(self) -> Mapping[str, Any]:
        """Runs every step in order and returns the produced handles."""
        self.validate()
        handles = {}
        for step in self._steps:
            logger.debug("%s: declaring %s", self.name, step.provides)
            handles[step.provides] = step.declare(*(handles[name] for name in step.requires))
        logger.info("%s: declared %d handles", self.name, len(handles))
        return MappingProxyType(handles)
