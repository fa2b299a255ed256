"""Error kinds raised by the risk assessment calculator and its collaborators."""


class AssessmentValidationError(ValueError):
    """Input rejected at a scoring boundary (out-of-range value, missing subscale, bad option)."""


class PersistenceError(RuntimeError):
    """A storage call failed. Never raised by the scoring functions themselves."""
