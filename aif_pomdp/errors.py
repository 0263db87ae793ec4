"""
Exceptions raised by the Active Inference agent.

Each error also derives from the builtin it refines, so callers catching
``ValueError`` or ``ArithmeticError`` keep working.
"""


class AIFError(Exception):
    """Base class for all agent errors."""


class InvalidConfiguration(AIFError, ValueError):
    """Malformed settings: bad control counts, horizon < 1, unknown options."""


class DimensionMismatch(AIFError, ValueError):
    """A tensor shape disagrees with the declared state/observation/action sizes."""


class NumericalInstability(AIFError, ArithmeticError):
    """A distribution could not be normalised and no uniform fallback applies."""
