"""Exception taxonomy for the LGP core."""


class LgpError(Exception):
    """Base class for all errors raised by the package."""


class ConfigurationError(LgpError, ValueError):
    """Invalid run configuration. Raised before any generation runs."""


class RepresentationError(LgpError, ValueError):
    """An instruction or program violates its operand or length bounds."""


class EvaluationError(LgpError, RuntimeError):
    """An episode could not be completed.

    Evaluators catch this per individual and score it with the sentinel fitness.
    """


__all__ = [
    "LgpError",
    "ConfigurationError",
    "RepresentationError",
    "EvaluationError",
]
