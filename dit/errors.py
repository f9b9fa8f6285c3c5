from __future__ import annotations


class DitError(RuntimeError):
    """Base error for every failure a command can report.

    `kind` is the stable name shown to the caller, `fatal` marks conditions that
    abort the invocation instead of just failing the command.
    """

    kind = "Error"
    fatal = False

    def __init__(self, message: str, *, key: str | None = None, field: str | None = None) -> None:
        super().__init__(message)
        self.key = key
        self.field = field


class NotFoundError(DitError):
    kind = "NotFound"


class AlreadyExistsError(DitError):
    kind = "AlreadyExists"


class AlreadyActiveError(DitError):
    kind = "AlreadyActiveElsewhere"


class NotActiveError(DitError):
    kind = "NotActive"


class EmptyStackError(DitError):
    kind = "EmptyStack"


class InvalidKeyError(DitError):
    kind = "InvalidKey"


class InvalidIntervalError(DitError):
    kind = "InvalidInterval"


class LockTimeoutError(DitError):
    kind = "LockTimeout"


class ParseError(DitError):
    kind = "ParseError"
    fatal = True


class CorruptIndexError(DitError):
    kind = "CorruptIndex"
    fatal = True


class ActiveConflictError(CorruptIndexError):
    kind = "ActiveConflict"

    def __init__(self, keys: list[str]) -> None:
        super().__init__(f"More than one task is active: {', '.join(keys)}; rebuild index?")
        self.keys = list(keys)


class InvalidInputError(DitError):
    kind = "InvalidInput"
