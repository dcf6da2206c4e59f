"""Exceptions raised by the registration pipeline."""


class RegistrationError(Exception):
    def __init__(self, *args):
        super().__init__(*args)


class InvalidInputError(RegistrationError):
    """Empty or malformed reference/source cloud or prior transform."""


class NoCorrespondencesError(RegistrationError):
    """The correspondence filter accepted zero matches."""


class NumericalFailureError(RegistrationError):
    """The eigen-decomposition produced no usable eigenpair."""


class RegistrationCancelledError(RegistrationError):
    """The caller cancelled the registration between iterations."""
