"""Per-event inputs: the context handed to every stage call and the raw
contributions of one detector."""

from typing import Any, Mapping, NamedTuple, Optional

from qnflow.core.binning import OUT_OF_RANGE

__all__ = ['EventContext', 'Contributions']


class Contributions(NamedTuple):
    """Raw contributions of one detector in one event."""
    phi: Any
    weight: Optional[Any] = None
    channel: Optional[Any] = None


class EventContext:
    """Event variables and the event-class bin they map to.

    One instance is built per event by the orchestrator and passed by
    reference to every stage; stages never keep it beyond the call.
    """

    __slots__ = ("variables", "bin")

    def __init__(self, variables: Mapping[str, float], bin_index: int):
        self.variables = variables
        self.bin = bin_index

    def __repr__(self):
        return f"EventContext(bin={self.bin}, variables={dict(self.variables)})"

    @property
    def in_range(self) -> bool:
        return self.bin != OUT_OF_RANGE
