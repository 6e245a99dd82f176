class ConfigurationError(ValueError):
    """Raised when grids, curves or model inputs are malformed. Nothing is simulated."""


class NumericalInstabilityError(ArithmeticError):
    """Raised when too many paths drive a drift denominator (1 + tau * L) to zero or below."""

    def __init__(self, message, n_unstable=0, n_paths=0):
        super().__init__(message)
        self.n_unstable = n_unstable
        self.n_paths = n_paths


class CurveEvaluationError(ValueError):
    """Raised when a curve (or numeraire) is asked for a time it cannot represent."""
