"""
Compilation errors.

Every error is fatal: it is raised where it is detected (attribute parsing,
shape resolution or code emission) and propagates unchanged to the caller.
Only the command line driver turns it into a diagnostic and an exit status.

Each class also derives from the closest built-in exception so callers that
catch ValueError/TypeError keep working.
"""


class CompilationError(Exception):
    """Base class for all errors raised while compiling a model."""


class InvalidAttributeError(CompilationError, ValueError):
    """An operator attribute has the wrong type, a bad value, or is missing."""


class TypeConstraintError(CompilationError, TypeError):
    """A tensor's dtype violates the type constraint of the operator using it."""


class ShapeError(CompilationError, ValueError):
    """Rank or dimension mismatch, incompatible broadcast, or bad payload size."""


class UnsupportedFeatureError(CompilationError, NotImplementedError):
    """A recognized but unimplemented operator or attribute combination."""


class UnresolvableGraphError(CompilationError, ValueError):
    """The graph cannot be fully resolved (cycle or dangling tensor reference)."""


class ModelLoadError(CompilationError, OSError):
    """The model file could not be read or decoded."""
