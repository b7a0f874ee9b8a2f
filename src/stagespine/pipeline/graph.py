"""Stage definitions and the stage graph registry.

Manifesto:
    A stage declares **what** it depends on and **what** describes its inputs;
    the session decides when to run it. Keeping definitions immutable and the
    graph validated up front turns wiring mistakes (unknown dependencies,
    cycles) into configuration errors raised before any stage executes.

ARCHITECTURE
────────────
::

    StageGraph
      ├── register(StageDefinition)   ── duplicate keys rejected
      ├── validate()                  ── unknown deps + cycles (Kahn's algorithm)
      ├── resolution_order(key)       ── dependency closure, deps first
      └── topological_order()         ── every stage, deps first

    StageDefinition (frozen)
      key, version, deps, fingerprint(ctx), run(ctx), required_options

Example::

    graph = StageGraph([
        StageDefinition(key="10-lower", version="3", deps=(),
                        fingerprint=lambda ctx: ctx.option("text"),
                        run=lower),
        StageDefinition(key="20-link", version="1", deps=("10-lower",),
                        fingerprint=lambda ctx: None,
                        run=link),
    ])

Tags:
    stagespine, pipeline, DAG, registry, stages

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Callable, Collection, Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from stagespine.core.errors import DependencyCycleError, DuplicateStageError, UnknownStageError
from stagespine.core.logging import get_logger

if TYPE_CHECKING:
    from stagespine.pipeline.session import StageContext

logger = get_logger(__name__)

StageKey = str


@dataclass(frozen=True)
class StageDefinition:
    """
    One named, versioned transformation step.

    Attributes:
        key: Unique stage key (e.g. "30-bind")
        version: Bumped whenever the stage's behavior changes
        deps: Ordered dependency keys
        fingerprint: Pure description of every authored input the stage reads
        run: Produces the stage artifact from ``ctx``
        required_options: Session options that must be present before running
        description: Human-readable description
    """

    key: StageKey
    version: str
    fingerprint: Callable[[StageContext], Any]
    run: Callable[[StageContext], Any]
    deps: tuple[StageKey, ...] = ()
    required_options: tuple[str, ...] = ()
    description: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "deps", tuple(self.deps))
        object.__setattr__(self, "required_options", tuple(self.required_options))
        if self.key in self.deps:
            raise DependencyCycleError([self.key])


class StageGraph:
    """Registry of stage definitions forming a DAG."""

    def __init__(self, stages: Iterable[StageDefinition] = ()) -> None:
        self._stages: dict[StageKey, StageDefinition] = {}
        for stage in stages:
            self.register(stage)

    def register(self, stage: StageDefinition) -> StageDefinition:
        if stage.key in self._stages:
            raise DuplicateStageError(stage.key)
        self._stages[stage.key] = stage
        logger.debug("stage.registered", stage=stage.key, version=stage.version, deps=list(stage.deps))
        return stage

    def stage(
        self,
        key: StageKey,
        *,
        version: str,
        deps: Iterable[StageKey] = (),
        fingerprint: Callable[[StageContext], Any],
        required_options: Iterable[str] = (),
    ) -> Callable[[Callable[[StageContext], Any]], Callable[[StageContext], Any]]:
        """Decorator form of :meth:`register` for a stage's ``run`` function."""

        def decorator(run: Callable[[StageContext], Any]) -> Callable[[StageContext], Any]:
            self.register(
                StageDefinition(
                    key=key,
                    version=version,
                    deps=tuple(deps),
                    fingerprint=fingerprint,
                    run=run,
                    required_options=tuple(required_options),
                    description=(run.__doc__ or "").strip(),
                )
            )
            return run

        return decorator

    def get(self, key: StageKey) -> StageDefinition:
        try:
            return self._stages[key]
        except KeyError:
            raise UnknownStageError(key) from None

    def __contains__(self, key: object) -> bool:
        return key in self._stages

    def __iter__(self) -> Iterator[StageDefinition]:
        return iter(self._stages.values())

    def __len__(self) -> int:
        return len(self._stages)

    @property
    def keys(self) -> list[StageKey]:
        return list(self._stages)

    def validate(self) -> None:
        """Check every dependency is registered and the graph has no cycles."""
        for stage in self._stages.values():
            for dep in stage.deps:
                if dep not in self._stages:
                    raise UnknownStageError(
                        dep, f"Stage '{stage.key}' depends on unknown stage '{dep}'"
                    )

        adjacency: dict[StageKey, list[StageKey]] = defaultdict(list)
        in_degree: dict[StageKey, int] = {key: 0 for key in self._stages}
        for stage in self._stages.values():
            for dep in stage.deps:
                adjacency[dep].append(stage.key)
                in_degree[stage.key] += 1

        queue: deque[StageKey] = deque(key for key, deg in in_degree.items() if deg == 0)
        visited = 0
        while queue:
            node = queue.popleft()
            visited += 1
            for neighbor in adjacency[node]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)

        if visited != len(self._stages):
            cycle_nodes = [key for key, deg in in_degree.items() if deg > 0]
            raise DependencyCycleError(cycle_nodes)

    def resolution_order(self, key: StageKey, resolved: Collection[StageKey] = ()) -> list[StageKey]:
        """
        Return ``key``'s dependency closure in depth-first post-order.

        Dependencies are visited in declaration order, so the order is exactly
        the one a recursive "resolve every dep, then yourself" walk produces.
        The last element is ``key`` itself. Stages in ``resolved`` are treated
        as already available: the walk neither returns nor descends into them.

        Raises:
            UnknownStageError: If ``key`` or any transitive dependency is unregistered
            DependencyCycleError: If the closure contains a cycle
        """
        self.get(key)
        order: list[StageKey] = []
        if key in resolved:
            return order
        done: set[StageKey] = set(resolved)
        on_path: list[StageKey] = []
        stack: list[tuple[StageKey, Iterator[StageKey]]] = []

        def enter(node: StageKey) -> None:
            on_path.append(node)
            stack.append((node, iter(self.get(node).deps)))

        enter(key)
        while stack:
            node, deps = stack[-1]
            for dep in deps:
                if dep in done:
                    continue
                if dep in on_path:
                    cycle = on_path[on_path.index(dep):]
                    raise DependencyCycleError(cycle)
                enter(dep)
                break
            else:
                stack.pop()
                on_path.pop()
                done.add(node)
                order.append(node)
        return order

    def topological_order(self) -> list[StageKey]:
        """Every registered stage, dependencies first, registration order otherwise."""
        self.validate()
        order: list[StageKey] = []
        seen: set[StageKey] = set()
        for key in self._stages:
            for node in self.resolution_order(key):
                if node not in seen:
                    seen.add(node)
                    order.append(node)
        return order


__all__ = [
    "StageKey",
    "StageDefinition",
    "StageGraph",
]
