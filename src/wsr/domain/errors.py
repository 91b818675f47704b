"""Exception taxonomy for the scheduling and ranking engine."""


class WsrError(Exception):
    """Base class for engine errors."""


class SchedulingInconsistency(WsrError):
    """The memory model produced no candidate for a requested rating.

    This is a programming-invariant violation and must reach the caller.
    """


class MissingMetadata(WsrError):
    """A candidate lacks parseable tags or a usable priority weight.

    Ranking logs it and treats the missing part as a zero contribution.
    """


class MalformedItemState(WsrError):
    """A stored scheduling field is missing or not numeric.

    Record decoding substitutes the documented default for that field.
    """


class ItemNotFound(WsrError):
    """No review item exists for the requested id."""
