"""Domain errors raised by the ledger, the case store and the judge."""


class ArbitrationError(Exception):
    """Base class for all arbitration failures."""


class CaseNotFound(ArbitrationError):
    def __init__(self, case_id):
        super().__init__(f"Case {case_id} not found")
        self.case_id = case_id


class NotAParty(ArbitrationError):
    def __init__(self, case_id, user_id):
        super().__init__(f"User {user_id} is not part of case {case_id}")
        self.case_id = case_id
        self.user_id = user_id


class ArgumentLimitReached(ArbitrationError):
    def __init__(self, side, limit):
        super().__init__(f"Maximum arguments reached for Lawyer {side} ({limit})")
        self.side = side
        self.limit = limit


class CounterSuperseded(ArbitrationError):
    """A newer argument on the same side landed before this one was answered."""

    def __init__(self, side, position, latest):
        super().__init__(
            f"Argument {position} of side {side} is no longer the latest "
            f"(latest is {latest}) or was already answered"
        )
        self.side = side
        self.position = position
        self.latest = latest
        self.argument = None


class ConcurrentUpdate(ArbitrationError):
    def __init__(self, case_id, attempts):
        super().__init__(f"Case {case_id} changed concurrently {attempts} times, giving up")
        self.case_id = case_id
        self.attempts = attempts


class ModelUnavailable(ArbitrationError):
    """The model call failed. ``argument`` is set when an argument was already saved."""

    def __init__(self, message, argument=None, side=None):
        super().__init__(message)
        self.argument = argument
        self.side = side

    @property
    def argument_saved(self):
        return self.argument is not None
