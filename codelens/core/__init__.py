# Lazy imports to avoid triggering full dependency chain.
# This allows targeted imports like `from codelens.core.db.models import Base`
# without pulling in llama_index, tree-sitter grammars, etc.

__all__ = [
    "AnalysisEngine",
    "AnalysisProvider",
    "DatabaseManager",
    "DependencyResolver",
    "LLMGateway",
    "LocalModel",
    "ProjectManager",
    "SemanticIndex",
    "extract_symbols",
    "parse_project",
]

_IMPORT_MAP = {
    "AnalysisEngine": ".analysis",
    "AnalysisProvider": ".provider",
    "DatabaseManager": ".db",
    "DependencyResolver": ".dependencies",
    "LLMGateway": ".gateway",
    "LocalModel": ".model",
    "ProjectManager": ".project",
    "SemanticIndex": ".semantic_index",
    "extract_symbols": ".ast_parser",
    "parse_project": ".ast_parser",
}


def __getattr__(name):
    if name in _IMPORT_MAP:
        import importlib
        module = importlib.import_module(_IMPORT_MAP[name], __package__)
        return getattr(module, name)
    raise AttributeError(f"module 'codelens.core' has no attribute {name}")
