"""Exception types raised across the cannoli package."""


class CannoliError(Exception):
    """Base class for all cannoli errors."""


class RunFatalError(CannoliError):
    """
    Raised by ``Run.error()`` after the run has recorded an error stoppage.

    It unwinds whatever call chain reported the failure (usually an item's
    ``execute()``). The run catches it only at its own task boundary.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnknownStatusError(CannoliError):
    """A status outside the closed ObjectStatus taxonomy reached the run."""


class LLMCallError(CannoliError):
    """The model provider returned no usable message.

    Returned as a value from ``Run.call_llm``, not raised through it.
    """


class ConfigError(CannoliError):
    """Configuration content could not be interpreted."""
