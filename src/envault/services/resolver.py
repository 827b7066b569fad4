"""Environment inheritance graph and layer merging.

Environments form a forest through their ``parent`` references. Resolving an
environment walks parent pointers from the requested leaf to the root,
rejecting unknown parents and cycles, then merges the layers root first.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import Enum

from envault.errors import CircularInheritanceError, ConfigurationError, EnvironmentNotFoundError
from envault.logging import get_logger
from envault.models import EnvironmentNode, ResolvedEnvironment
from envault.parsers.dotenv import DotenvParser

log = get_logger("envault.services.resolver")

LayerLoader = Callable[[str], bytes | None]


class VisitState(Enum):
    """Per-node walk state."""

    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class EnvironmentGraph:
    """Arena of environment nodes indexed by name."""

    def __init__(self, nodes: Iterable[EnvironmentNode]) -> None:
        """Build the arena.

        Raises:
            ConfigurationError: If two nodes share a name.
        """
        self._nodes: dict[str, EnvironmentNode] = {}
        for node in nodes:
            if node.name in self._nodes:
                raise ConfigurationError(f"Environment '{node.name}' is defined twice")
            self._nodes[node.name] = node

    @property
    def names(self) -> list[str]:
        """Environment names in definition order."""
        return list(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, name: str) -> EnvironmentNode:
        """Return a node by name.

        Raises:
            EnvironmentNotFoundError: If no such environment is defined.
        """
        try:
            return self._nodes[name]
        except KeyError:
            raise EnvironmentNotFoundError(name, self.names) from None

    def chain(self, name: str) -> list[str]:
        """Return the inheritance chain of ``name``, root first.

        Raises:
            EnvironmentNotFoundError: If ``name`` or any ancestor is undefined.
            CircularInheritanceError: If the parent pointers loop.
        """
        return self._walk(name, {})

    def validate(self) -> None:
        """Check every node for missing parents and cycles."""
        states: dict[str, VisitState] = {}
        for name in self._nodes:
            self._walk(name, states)
        log.debug("environment_graph_valid", environments=len(self._nodes))

    def _walk(self, name: str, states: dict[str, VisitState]) -> list[str]:
        # Leaf-to-root order; reversed at the end.
        path: list[str] = []
        current: str | None = name
        while current is not None:
            state = states.get(current, VisitState.UNVISITED)
            if state is VisitState.IN_PROGRESS:
                start = path.index(current)
                raise CircularInheritanceError(path[start:] + [current])
            if state is VisitState.RESOLVED:
                # Ancestors of a resolved node are already known to be valid.
                path.extend(self._ancestors_of_resolved(current))
                break

            node = self.get(current)
            states[current] = VisitState.IN_PROGRESS
            path.append(current)
            current = node.parent

        for visited in path:
            states[visited] = VisitState.RESOLVED
        return list(reversed(path))

    def _ancestors_of_resolved(self, name: str) -> list[str]:
        ancestors = []
        current: str | None = name
        while current is not None:
            ancestors.append(current)
            current = self._nodes[current].parent
        return ancestors


def merge_layers(layers: Iterable[dict[str, str]]) -> dict[str, str]:
    """Merge mappings left to right.

    Later layers win key collisions; an overridden key keeps the position
    where it first appeared. Input mappings are not modified.
    """
    merged: dict[str, str] = {}
    for layer in layers:
        merged.update(layer)
    return merged


class EnvironmentResolver:
    """Resolves an environment by merging its decrypted inheritance chain."""

    def __init__(self, graph: EnvironmentGraph, parser: DotenvParser | None = None) -> None:
        self._graph = graph
        self._parser = parser or DotenvParser()

    @property
    def graph(self) -> EnvironmentGraph:
        """The environment graph."""
        return self._graph

    def resolve(self, name: str, load_layer: LayerLoader) -> ResolvedEnvironment:
        """Resolve ``name``.

        The chain is validated before any layer is loaded, so graph errors
        surface before decryption.

        Args:
            name: Environment to resolve.
            load_layer: Returns a layer's plaintext bytes, or None if the layer
                has no content. Errors it raises propagate.

        Returns:
            The merged environment.
        """
        chain = self._graph.chain(name)
        log.debug("inheritance_chain", environment=name, chain=chain)

        parsed: list[dict[str, str]] = []
        resolved = ResolvedEnvironment(name=name)
        for layer in chain:
            content = load_layer(layer)
            if content is None:
                resolved.skipped.append(layer)
                continue
            parsed.append(self._parser.parse(content))
            resolved.layers.append(layer)

        resolved.values = merge_layers(parsed)
        log.info(
            "environment_resolved",
            environment=name,
            layers=resolved.layers,
            skipped=resolved.skipped,
            variables=len(resolved.values),
        )
        return resolved
