"""Exception hierarchy for the iteration driver.

Only configuration/input problems and recording-protocol violations are
raised as exceptions. Numerical non-convergence is reported through the
convergence signal of the monitor and never raised.
"""


class OpenIterError(Exception):
    """Base class for all errors raised by openiter."""


class ConfigurationError(OpenIterError, ValueError):
    """Invalid or inconsistent configuration (fatal)."""


class MissingInputFileError(OpenIterError, FileNotFoundError):
    """A required external input file does not exist (fatal)."""


class TapeError(OpenIterError, RuntimeError):
    """Violation of the recording protocol of the differentiation tape."""
