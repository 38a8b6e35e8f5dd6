from typing import Any
from sqlcraft.statements.models import StatementContainer, StatementHandle, StatementNode

class Visitor:
    """
    A base class for traversing a statement namespace tree.
    """
    def visit(self, node: StatementNode) -> Any:
        """
        The entry point for visiting a node. Dispatches to the correct visit method.
        """
        method_name = f'visit_{node.__class__.__name__}'
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: StatementNode) -> Any:
        """
        Called if no explicit visit method exists for a node type.
        """
        raise NotImplementedError(f"No visit_{node.__class__.__name__} method defined in {self.__class__.__name__}")

class HandleCollector(Visitor):
    """
    Flattens a tree into its statement handles, depth first in insertion order.
    """
    def visit_StatementContainer(self, node: StatementContainer) -> list[StatementHandle]:
        handles: list[StatementHandle] = []
        for child in node.children.values():
            handles.extend(self.visit(child))
        return handles

    def visit_StatementHandle(self, node: StatementHandle) -> list[StatementHandle]:
        return [node]
