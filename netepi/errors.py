from __future__ import annotations


class NetepiError(Exception):
    pass


class InvalidDurationError(NetepiError):
    pass


class UnsupportedDissolutionModelError(NetepiError):
    pass


class TermMismatchError(NetepiError):
    pass


class UnknownTermError(NetepiError):
    pass


class EstimationFailedError(NetepiError):
    """Raised when the coefficient solver reports non-convergence."""

    def __init__(self, message: str, result=None) -> None:
        super().__init__(message)
        self.result = result


class ConstraintViolationError(NetepiError):
    pass


class InvalidEpidemicParameterError(NetepiError):
    pass
