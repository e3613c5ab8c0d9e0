class RulesetEngineError(Exception):
    """Base class for all ruleset engine exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except RulesetEngineError`` clause can catch any engine
    error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class OverrideNotFoundError(RulesetEngineError):
    """Raised when a requested override record does not exist."""

    def __init__(self, detail: str = "Override not found"):
        super().__init__(detail)


class InvalidOverrideScopeError(RulesetEngineError):
    """Raised when a scope does not carry the keys its layer requires.

    This is a caller bug (precondition violation), not bad stored data,
    so it is surfaced instead of being recovered.
    """

    def __init__(self, detail: str = "Invalid override scope"):
        super().__init__(detail)


class OverrideStoreUnavailableError(RulesetEngineError):
    """Raised by the override store when the database cannot be read.

    The ruleset loader always recovers from this by falling back to the
    code-defined base ruleset; it never reaches an HTTP response.
    """

    def __init__(self, detail: str = "Override store unavailable"):
        super().__init__(detail)


class InvalidOverridePayloadError(RulesetEngineError):
    """Raised when an admin submits an override the normalizer would drop."""

    def __init__(self, detail: str = "Invalid override payload"):
        super().__init__(detail)
