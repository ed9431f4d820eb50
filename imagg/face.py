"""Names, packets, signals and an in-process face driven by a virtual clock."""

from __future__ import annotations

import enum
import heapq
import itertools
import random
import string
import urllib.parse
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Union

GENERIC_COMPONENT = 0x08
KEYWORD_COMPONENT = 0x20
SEGMENT_COMPONENT = 0x32
VERSION_COMPONENT = 0x36

CONTENT_TYPE_BLOB = 0
CONTENT_TYPE_NACK = 3

DEFAULT_INTEREST_LIFETIME = 4.0

_UNRESERVED = frozenset((string.ascii_letters + string.digits + "-._~").encode())
_NUMBER_LABELS = {SEGMENT_COMPONENT: "seg", VERSION_COMPONENT: "v"}


def _encode_number(number: int) -> bytes:
    if number < 0:
        raise ValueError(f"negative number {number} cannot be encoded")
    for size in (1, 2, 4, 8):
        if number < 1 << (8 * size):
            return number.to_bytes(size, "big")
    raise ValueError(f"number {number} does not fit in 64 bits")


def _escape(value: bytes) -> str:
    if all(byte == 0x2E for byte in value):
        return "..." + "." * len(value)
    return "".join(chr(b) if b in _UNRESERVED else f"%{b:02X}" for b in value)


def _unescape(text: str) -> bytes:
    if text and set(text) == {"."}:
        if len(text) < 3:
            raise ValueError(f"illegal name component {text!r}")
        return text[3:].encode()
    return urllib.parse.unquote_to_bytes(text)


@dataclass(frozen=True)
class NameComponent:
    """One typed component of a name."""

    value: bytes
    type: int = GENERIC_COMPONENT

    def __post_init__(self) -> None:
        if isinstance(self.value, str):
            object.__setattr__(self, "value", self.value.encode())
        if not 1 <= self.type <= 0xFFFF:
            raise ValueError(f"invalid name component type {self.type}")

    @classmethod
    def from_segment(cls, number: int) -> NameComponent:
        return cls(_encode_number(number), SEGMENT_COMPONENT)

    @classmethod
    def from_version(cls, number: int) -> NameComponent:
        return cls(_encode_number(number), VERSION_COMPONENT)

    @classmethod
    def _parse(cls, text: str) -> NameComponent:
        head, sep, rest = text.partition("=")
        if sep:
            if head == "seg":
                return cls.from_segment(int(rest))
            if head == "v":
                return cls.from_version(int(rest))
            if head.isdigit():
                return cls(_unescape(rest), int(head))
        return cls(_unescape(text))

    def _is_number(self) -> bool:
        return len(self.value) in (1, 2, 4, 8)

    def is_segment(self) -> bool:
        return self.type == SEGMENT_COMPONENT and self._is_number()

    def is_version(self) -> bool:
        return self.type == VERSION_COMPONENT and self._is_number()

    def to_segment(self) -> int:
        if not self.is_segment():
            raise ValueError(f"name component {self.to_uri()} is not a segment number")
        return int.from_bytes(self.value, "big")

    def to_uri(self) -> str:
        label = _NUMBER_LABELS.get(self.type)
        if label is not None and self._is_number():
            return f"{label}={int.from_bytes(self.value, 'big')}"
        escaped = _escape(self.value)
        if self.type == GENERIC_COMPONENT:
            return escaped
        return f"{self.type}={escaped}"

    def __str__(self) -> str:
        return self.to_uri()


ComponentLike = Union[NameComponent, str, bytes]


def _as_component(component: ComponentLike) -> NameComponent:
    if isinstance(component, NameComponent):
        return component
    return NameComponent(component)


class Name:
    """An immutable sequence of name components."""

    __slots__ = ("_components",)

    def __init__(self, components: Iterable[ComponentLike] = ()) -> None:
        self._components = tuple(_as_component(c) for c in components)

    @classmethod
    def from_uri(cls, uri: str) -> Name:
        if uri.startswith("ndn:"):
            uri = uri[4:]
        return cls(NameComponent._parse(part) for part in uri.split("/") if part)

    def append(self, component: ComponentLike) -> Name:
        return Name(self._components + (_as_component(component),))

    def append_segment(self, number: int) -> Name:
        return self.append(NameComponent.from_segment(number))

    def to_uri(self) -> str:
        if not self._components:
            return "/"
        return "".join("/" + c.to_uri() for c in self._components)

    def __len__(self) -> int:
        return len(self._components)

    def __iter__(self) -> Iterator[NameComponent]:
        return iter(self._components)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return Name(self._components[index])
        return self._components[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Name):
            return NotImplemented
        return self._components == other._components

    def __hash__(self) -> int:
        return hash(self._components)

    def __str__(self) -> str:
        return self.to_uri()

    def __repr__(self) -> str:
        return f"Name({self.to_uri()!r})"


def _random_nonce() -> int:
    return random.getrandbits(32)


@dataclass
class Interest:
    """A request for data under a name."""

    name: Name
    can_be_prefix: bool = False
    must_be_fresh: bool = False
    lifetime: float = DEFAULT_INTEREST_LIFETIME
    nonce: int = field(default_factory=_random_nonce)

    def __post_init__(self) -> None:
        if self.lifetime < 0:
            raise ValueError("interest lifetime cannot be negative")

    def refresh_nonce(self) -> None:
        """Replace the nonce with a different random value."""
        nonce = self.nonce
        while nonce == self.nonce:
            nonce = _random_nonce()
        self.nonce = nonce


@dataclass
class Data:
    """A named data packet."""

    name: Name
    content: bytes = b""
    final_block: Optional[NameComponent] = None
    congestion_mark: int = 0
    content_type: int = CONTENT_TYPE_BLOB


class NackReason(enum.Enum):
    NONE = 0
    CONGESTION = 50
    DUPLICATE = 100
    NO_ROUTE = 150

    def __str__(self) -> str:
        return {
            NackReason.NONE: "None",
            NackReason.CONGESTION: "Congestion",
            NackReason.DUPLICATE: "Duplicate",
            NackReason.NO_ROUTE: "NoRoute",
        }[self]


@dataclass(frozen=True)
class Nack:
    """A negative acknowledgement for an interest."""

    interest: Interest
    reason: NackReason = NackReason.NONE


class Signal:
    """A list of handlers called in connection order."""

    def __init__(self) -> None:
        self._handlers: list[Callable] = []

    def connect(self, handler: Callable) -> Callable[[], None]:
        """Add a handler; returns a function that disconnects it."""
        self._handlers.append(handler)

        def disconnect() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return disconnect

    def emit(self, *args) -> None:
        for handler in list(self._handlers):
            handler(*args)


class EventHandle:
    """A scheduled callback; true while it is still pending."""

    __slots__ = ("_callback",)

    def __init__(self, callback: Callable[[], None]) -> None:
        self._callback: Optional[Callable[[], None]] = callback

    def cancel(self) -> None:
        self._callback = None

    def _fire(self) -> None:
        callback, self._callback = self._callback, None
        if callback is not None:
            callback()

    def __bool__(self) -> bool:
        return self._callback is not None


class PendingInterest:
    """An expressed interest whose reply has not been delivered."""

    __slots__ = ("_event",)

    def __init__(self, event: EventHandle) -> None:
        self._event = event

    def cancel(self) -> None:
        self._event.cancel()

    def __bool__(self) -> bool:
        return bool(self._event)


Reply = Union[Data, Nack, None]


class Face:
    """An event loop with a virtual clock that answers interests through a responder.

    The responder receives each expressed interest and returns a Data packet,
    a Nack, or None to let the interest time out after its lifetime.
    """

    def __init__(
        self,
        responder: Optional[Callable[[Interest], Reply]] = None,
        delay: float = 0.0,
    ) -> None:
        self.responder = responder
        self.delay = delay
        self._now = 0.0
        self._queue: list[tuple[float, int, EventHandle]] = []
        self._sequence = itertools.count()

    @property
    def now(self) -> float:
        """Current virtual time in seconds."""
        return self._now

    def schedule(self, delay: float, callback: Callable[[], None]) -> EventHandle:
        if delay < 0:
            raise ValueError("delay cannot be negative")
        handle = EventHandle(callback)
        heapq.heappush(self._queue, (self._now + delay, next(self._sequence), handle))
        return handle

    def post(self, callback: Callable[[], None]) -> EventHandle:
        return self.schedule(0.0, callback)

    def express_interest(
        self,
        interest: Interest,
        on_data: Callable[[Interest, Data], None],
        on_nack: Optional[Callable[[Interest, Nack], None]] = None,
        on_timeout: Optional[Callable[[Interest], None]] = None,
    ) -> PendingInterest:
        reply = self.responder(interest) if self.responder is not None else None
        if isinstance(reply, Data):
            return PendingInterest(self.schedule(self.delay, lambda: on_data(interest, reply)))
        if isinstance(reply, Nack):
            def deliver_nack() -> None:
                if on_nack is not None:
                    on_nack(interest, reply)
            return PendingInterest(self.schedule(self.delay, deliver_nack))
        if reply is None:
            def deliver_timeout() -> None:
                if on_timeout is not None:
                    on_timeout(interest)
            return PendingInterest(self.schedule(interest.lifetime, deliver_timeout))
        raise TypeError(f"responder returned {type(reply).__name__}, expected Data, Nack or None")

    def process_events(self) -> None:
        """Run scheduled callbacks in time order until none are left."""
        while self._queue:
            when, _, handle = heapq.heappop(self._queue)
            if not handle:
                continue
            self._now = max(self._now, when)
            handle._fire()