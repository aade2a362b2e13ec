from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

from normalizer import is_special, normalize_code


@dataclass(frozen=True)
class Leaf:
    # Regular course ("CS 2110"), special requirement or permission.
    content: str

    def __post_init__(self):
        normalized = normalize_code(self.content)
        if normalized is None:
            raise ValueError("Leaf content must not be blank")
        object.__setattr__(self, "content", normalized)


@dataclass(frozen=True)
class And:
    left: "Requirement"
    right: "Requirement"


@dataclass(frozen=True)
class Or:
    left: "Requirement"
    right: "Requirement"


Requirement = Union[Leaf, And, Or]


def _unknown_node(node) -> TypeError:
    return TypeError(f"Unknown requirement node: {node!r}")


def is_satisfied(node: Requirement, context) -> bool:
    """
    Returns True if the requirement is already met by `context` (a set of ids).
    Pure membership check; never plans anything.
    """
    if isinstance(node, Or):
        # Long alternative lists are right-leaning chains; walk them in a loop.
        while isinstance(node, Or):
            if is_satisfied(node.left, context):
                return True
            node = node.right
        return is_satisfied(node, context)
    if isinstance(node, And):
        while isinstance(node, And):
            if not is_satisfied(node.left, context):
                return False
            node = node.right
        return is_satisfied(node, context)
    if isinstance(node, Leaf):
        return node.content in context
    raise _unknown_node(node)


def iter_leaves(node: Requirement) -> Iterator[str]:
    """Yields every leaf id of the tree, left to right (duplicates included)."""
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, Leaf):
            yield current.content
        elif isinstance(current, (And, Or)):
            stack.append(current.right)
            stack.append(current.left)
        else:
            raise _unknown_node(current)


def leaf_ids(node: Requirement) -> list[str]:
    """Distinct leaf ids in first-seen order."""
    return list(dict.fromkeys(iter_leaves(node)))


def course_codes(node: Requirement) -> list[str]:
    """Distinct regular-course leaves; special/permission leaves are left out."""
    return [c for c in leaf_ids(node) if not is_special(c)]


def is_direct_special(node: Requirement) -> bool:
    """True only when the node itself is a special/permission leaf."""
    return isinstance(node, Leaf) and is_special(node.content)


def chain_operands(node: Requirement) -> list:
    """
    Operands of a right-leaning chain of one node type.

      Or(A, Or(B, C)) -> [A, B, C]
    """
    node_type = type(node)
    operands = []
    while isinstance(node, node_type) and isinstance(node, (And, Or)):
        operands.append(node.left)
        node = node.right
    operands.append(node)
    return operands


def format_requirement(node: Requirement) -> str:
    """
    Human-readable rendering of a tree.

      Or(CS 1110, CS 1112)                 -> "CS 1110 OR CS 1112"
      And(Or(CS 1110, CS 1112), MATH 1920) -> "(CS 1110 OR CS 1112) AND MATH 1920"
    """
    if isinstance(node, Leaf):
        return node.content
    if isinstance(node, (And, Or)):
        op = " AND " if isinstance(node, And) else " OR "
        return op.join(_format_operand(o) for o in chain_operands(node))
    raise _unknown_node(node)


def _format_operand(node: Requirement) -> str:
    text = format_requirement(node)
    if isinstance(node, (And, Or)):
        return f"({text})"
    return text
