"""
Read-only adjacency view over a flow's blocks.

Blocks keep their fall-through targets in ``connections`` and their digit
branches in gather ``options``; FlowGraph turns both into typed Edge
records so traversal code never has to look at config internals.
"""

from typing import Dict, Iterable, Iterator, List, Optional, Set

from ..config import EdgeKind
from ..models import Block, Edge


class FlowGraph:
    """Adjacency structure for one flow."""

    def __init__(self, blocks: Iterable[Block]):
        self._blocks: Dict[str, Block] = {}
        for block in blocks:
            self._blocks.setdefault(block.id, block)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[Block]:
        return iter(self._blocks.values())

    def get(self, block_id: Optional[str]) -> Optional[Block]:
        if not block_id:
            return None
        return self._blocks.get(block_id)

    @property
    def entry_id(self) -> Optional[str]:
        """First block by convention."""
        return next(iter(self._blocks), None)

    def edges_from(self, block_id: str) -> List[Edge]:
        block = self._blocks.get(block_id)
        if block is None:
            return []

        edges = [Edge(block.id, target, EdgeKind.NEXT) for target in block.connections]
        for option in getattr(block.config, "options", []):
            if option.block_id:
                edges.append(Edge(block.id, option.block_id, EdgeKind.OPTION, option.digit))
        return edges

    @property
    def edges(self) -> List[Edge]:
        return [edge for block_id in self._blocks for edge in self.edges_from(block_id)]

    def successors(self, block_id: str) -> List[str]:
        return list(dict.fromkeys(edge.target_id for edge in self.edges_from(block_id)))

    def next_block(self, block_id: str) -> Optional[Block]:
        """First resolvable fall-through target."""
        block = self._blocks.get(block_id)
        if block is None:
            return None
        for target in block.connections:
            if target in self._blocks:
                return self._blocks[target]
        return None

    def dangling_edges(self) -> List[Edge]:
        return [edge for edge in self.edges if edge.target_id not in self._blocks]

    def reachable_from(self, block_id: Optional[str] = None) -> Set[str]:
        """Block ids reachable from ``block_id`` (the entry block by default)."""
        start = block_id or self.entry_id
        reachable: Set[str] = set()
        queue = [start] if start in self._blocks else []

        while queue:
            current = queue.pop(0)
            if current in reachable:
                continue
            reachable.add(current)
            queue.extend(t for t in self.successors(current) if t in self._blocks)

        return reachable

    def find_cycles(self) -> List[List[str]]:
        """
        Find cycles with a depth-first search.

        Returns:
            One block id path per back edge, starting and ending at the
            block the back edge returns to.
        """
        cycles: List[List[str]] = []
        visited: Set[str] = set()
        stack: List[str] = []
        on_stack: Set[str] = set()

        def dfs(block_id: str) -> None:
            visited.add(block_id)
            stack.append(block_id)
            on_stack.add(block_id)

            for target in self.successors(block_id):
                if target not in self._blocks:
                    continue
                if target not in visited:
                    dfs(target)
                elif target in on_stack:
                    cycles.append(stack[stack.index(target):] + [target])

            stack.pop()
            on_stack.discard(block_id)

        for block_id in self._blocks:
            if block_id not in visited:
                dfs(block_id)

        return cycles
