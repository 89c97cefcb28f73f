"""
Exception hierarchy for the CMMS core.
"""


class CMMSError(Exception):
    """Base class for all errors raised by the CMMS core."""


class ValidationError(CMMSError):
    """Input rejected before any store mutation."""


class MissingReferenceError(CMMSError):
    """An entity points at equipment, a user or a part that does not exist."""

    def __init__(self, kind: str, ref_id: str):
        self.kind = kind
        self.ref_id = ref_id
        super().__init__(f"{kind} with ID {ref_id} not found")


class StoreError(CMMSError):
    """The persistent store failed to read or write."""


class InvalidTransitionError(CMMSError):
    """A work order status change that the lifecycle does not allow."""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move work order from '{current}' to '{requested}'")


def describe_validation_error(error) -> str:
    """Flatten a pydantic ValidationError into a single precise message"""
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item["loc"]) or "payload"
        parts.append(f"{field}: {item['msg']}")
    return "; ".join(parts)
