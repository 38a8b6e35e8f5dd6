from dataclasses import dataclass, field
from typing import Any

# ==================================================
# Compiled Output
# ==================================================

@dataclass
class CompiledStatement:
    """
    Represents a statement after template resolution: the text handed to a dialect
    and the bind values it references.
    """
    sql: Any
    binds: dict[str, Any] = field(default_factory=dict)
