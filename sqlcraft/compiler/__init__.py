from sqlcraft.compiler.template_resolver import COMPARATORS, TemplateResolver, compare_version
from sqlcraft.compiler.compiled_statement import CompiledStatement

__all__ = [
    "TemplateResolver",
    "CompiledStatement",
    "COMPARATORS",
    "compare_version",
]
