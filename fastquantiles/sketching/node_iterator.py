"""In-order traversal over a tree of sample nodes."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastquantiles.sketching.sample import Sample
    from fastquantiles.sketching.samples_node import SamplesNode


class NodeIterator[T]:
    """Lazy, single-pass, ascending iterator over a node and its subtrees.

    For every node the left subtree is yielded first, then the node's own
    samples, then the right subtree. Pending nodes are kept on an explicit
    stack of ``[node, next_index]`` frames, so deep trees never hit the
    interpreter recursion limit and the caller may stop at any time without
    the rest of the tree being visited.

    The iterator is not restartable: once exhausted it keeps raising
    StopIteration. Build a new one for every traversal. The tree must not be
    mutated while an iterator over it is alive.

    Example:
        for sample in NodeIterator(root):
            if sample.value > threshold:
                break
    """

    __slots__ = ("_stack", "_yielded")

    def __init__(self, node: SamplesNode[T] | None):
        self._stack: list[list] = []
        self._yielded = 0
        self._push_left_spine(node)

    def _push_left_spine(self, node: SamplesNode[T] | None) -> None:
        while node is not None:
            self._stack.append([node, 0])
            node = node.left

    def __iter__(self) -> NodeIterator[T]:
        return self

    def __next__(self) -> Sample[T]:
        stack = self._stack
        while stack:
            frame = stack[-1]
            node, index = frame
            if index < len(node.samples):
                frame[1] = index + 1
                self._yielded += 1
                return node.samples[index]
            # Own samples done: the right subtree is all that is left here
            stack.pop()
            self._push_left_spine(node.right)
        raise StopIteration

    @property
    def yielded(self) -> int:
        """Number of samples produced so far."""
        return self._yielded

    @property
    def exhausted(self) -> bool:
        """True once the traversal has run off the end of the tree."""
        return not self._stack
