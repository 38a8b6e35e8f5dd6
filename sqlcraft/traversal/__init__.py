from sqlcraft.traversal.visitor_pattern import HandleCollector, Visitor

__all__ = ["Visitor", "HandleCollector"]
