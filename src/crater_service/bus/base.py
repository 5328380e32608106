"""Event bus capability interface consumed by the update engine."""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel, Field


class Message(BaseModel):
    """One unit of work from the bus.

    Only the tag is interpreted; ``payload`` is carried through as received.
    """

    kind: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class Listener(Protocol):
    def receive(self) -> Message | None:
        """Block until a message arrives; ``None`` means the stream has ended for good."""
        ...


class Bus(Protocol):
    def listen(self) -> Listener: ...

    def close(self) -> None: ...
