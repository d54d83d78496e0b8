"""
Exception types for the automaton core.

Structural problems are reported as diagnostics and simulation rejects as
result values; exceptions are reserved for programming errors and malformed
input.
"""


class AutomatonError(ValueError):
    """Raised when a mutation would corrupt the automaton (duplicate ids, dangling references)."""
    pass


class AutomatonImportError(AutomatonError):
    """Raised when a portable document cannot be turned into an automaton."""
    pass


class TransformationError(AutomatonError):
    """Raised when a conversion is requested between unsupported kinds."""
    pass
