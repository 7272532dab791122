from models import FlowKind


class WaletteRelayError(Exception):
    """Base class for relay errors."""


class InitiationError(WaletteRelayError):
    def __init__(self, kind: FlowKind, reason: str):
        super().__init__(f"Failed to initiate {kind.value}: {reason}")
        self.kind = kind
        self.reason = reason


class ReactionError(WaletteRelayError):
    """Raised when a decoded event could not be acted upon."""


class CorrelationMismatch(ReactionError):
    def __init__(self, kind: FlowKind, expected: str, received: str):
        super().__init__(
            f"{kind.value} event for '{received}' does not match tracked flow '{expected}'"
        )
        self.kind = kind
        self.expected = expected
        self.received = received


class ReactionIOError(ReactionError):
    def __init__(self, kind: FlowKind, correlation_id: str, reason: str):
        super().__init__(f"{kind.value} reaction for '{correlation_id}' failed: {reason}")
        self.kind = kind
        self.correlation_id = correlation_id
        self.reason = reason


class FlowAlreadyOpen(WaletteRelayError):
    def __init__(self, kind: FlowKind, correlation_id: str):
        super().__init__(f"{kind.value} flow '{correlation_id}' is already open")
        self.kind = kind
        self.correlation_id = correlation_id


class FlowClosed(ReactionError):
    """The event targets a flow that can no longer complete."""

    def __init__(self, kind: FlowKind, correlation_id: str, state: str):
        super().__init__(f"{kind.value} flow '{correlation_id}' is {state}")
        self.kind = kind
        self.correlation_id = correlation_id
        self.state = state
