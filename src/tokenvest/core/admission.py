"""
Stream admission strategies.

An admission policy owns the stream records and decides how many live
streams a beneficiary may hold, how streams are addressed, and what happens
to a record once it is fully claimed.

- ``KeyedAdmission``: one slot per beneficiary, addressed by the
  beneficiary address. A slot can be reused only after its stream is fully
  claimed; the completed record stays until it is overwritten.
- ``InstanceAdmission``: every stream is an independent record addressed by
  an opaque handle. A beneficiary may hold any number of them and completed
  streams are deleted. Handles are capabilities: whoever presents one may
  trigger a claim.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional

from .exceptions import InvalidParametersError, NotAuthorizedError, StreamAlreadyExistsError
from .stream import Stream


class AdmissionPolicy(ABC):
    """Storage and admission rules for stream records."""

    name: str = ""

    # Whether a claimable-amount query for an absent stream answers 0
    missing_claimable_is_zero: bool = False

    @abstractmethod
    def next_stream_id(self, creator: str, beneficiary: str) -> str:
        """Identifier the next stored stream will get. Must not mutate state."""

    @abstractmethod
    def check_admission(self, beneficiary: str) -> None:
        """Raise StreamAlreadyExistsError if ``beneficiary`` cannot take a new stream."""

    @abstractmethod
    def store(self, stream: Stream) -> None:
        ...

    @abstractmethod
    def get(self, stream_id: str) -> Optional[Stream]:
        ...

    @abstractmethod
    def resolve_claim(self, caller: str, stream_id: Optional[str]) -> str:
        """Return the id of the stream a claim by ``caller`` refers to."""

    @abstractmethod
    def on_completed(self, stream: Stream) -> None:
        """Apply the completion rule to a fully claimed stream."""

    @abstractmethod
    def __iter__(self) -> Iterator[Stream]:
        ...

    @abstractmethod
    def streams_for(self, beneficiary: str) -> List[Stream]:
        ...

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    def load(self, data: Dict[str, Any]) -> None:
        ...

    def __len__(self) -> int:
        return sum(1 for _ in self)


class KeyedAdmission(AdmissionPolicy):
    """Single active stream per beneficiary, keyed by beneficiary address."""

    name = "keyed"
    missing_claimable_is_zero = True

    def __init__(self) -> None:
        self.streams: Dict[str, Stream] = {}

    def next_stream_id(self, creator: str, beneficiary: str) -> str:
        return beneficiary

    def check_admission(self, beneficiary: str) -> None:
        existing = self.streams.get(beneficiary)
        if existing is not None and not existing.is_fully_claimed:
            raise StreamAlreadyExistsError(
                f"Beneficiary {beneficiary[:10]} already has a live stream",
                details={
                    "beneficiary": beneficiary,
                    "remaining_amount": existing.remaining_amount,
                },
            )

    def store(self, stream: Stream) -> None:
        self.streams[stream.beneficiary] = stream

    def get(self, stream_id: str) -> Optional[Stream]:
        return self.streams.get(stream_id)

    def resolve_claim(self, caller: str, stream_id: Optional[str]) -> str:
        if stream_id is not None and stream_id != caller:
            raise NotAuthorizedError(
                "Keyed streams are claimed by their beneficiary",
                details={"caller": caller, "stream_id": stream_id},
            )
        return caller

    def on_completed(self, stream: Stream) -> None:
        # Record stays in its slot until a new create overwrites it
        return None

    def __iter__(self) -> Iterator[Stream]:
        return iter(list(self.streams.values()))

    def streams_for(self, beneficiary: str) -> List[Stream]:
        stream = self.streams.get(beneficiary)
        return [stream] if stream is not None else []

    def to_dict(self) -> Dict[str, Any]:
        return {"streams": [s.to_dict() for s in self.streams.values()]}

    def load(self, data: Dict[str, Any]) -> None:
        self.streams = {}
        for raw in data.get("streams", []):
            self.store(Stream.from_dict(raw))


class InstanceAdmission(AdmissionPolicy):
    """Independent, handle-addressed stream instances."""

    name = "instances"
    missing_claimable_is_zero = False

    def __init__(self) -> None:
        self.streams: Dict[str, Stream] = {}
        self.by_beneficiary: Dict[str, List[str]] = {}
        self.handle_counter = 0

    def next_stream_id(self, creator: str, beneficiary: str) -> str:
        seed = f"{self.handle_counter + 1}:{creator}:{beneficiary}".encode()
        return f"0x{hashlib.sha3_256(seed).digest()[-20:].hex()}"

    def check_admission(self, beneficiary: str) -> None:
        return None

    def store(self, stream: Stream) -> None:
        if stream.stream_id in self.streams:
            raise StreamAlreadyExistsError(
                f"Stream handle {stream.stream_id[:10]} is already in use",
                details={"stream_id": stream.stream_id},
            )
        self.streams[stream.stream_id] = stream
        self.by_beneficiary.setdefault(stream.beneficiary, []).append(stream.stream_id)
        self.handle_counter += 1

    def get(self, stream_id: str) -> Optional[Stream]:
        return self.streams.get(stream_id)

    def resolve_claim(self, caller: str, stream_id: Optional[str]) -> str:
        if stream_id is None:
            raise InvalidParametersError("A stream handle is required to claim")
        return stream_id

    def on_completed(self, stream: Stream) -> None:
        self.streams.pop(stream.stream_id, None)
        handles = self.by_beneficiary.get(stream.beneficiary, [])
        if stream.stream_id in handles:
            handles.remove(stream.stream_id)
        if not handles:
            self.by_beneficiary.pop(stream.beneficiary, None)

    def __iter__(self) -> Iterator[Stream]:
        return iter(list(self.streams.values()))

    def streams_for(self, beneficiary: str) -> List[Stream]:
        return [self.streams[h] for h in self.by_beneficiary.get(beneficiary, [])]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handle_counter": self.handle_counter,
            "streams": [s.to_dict() for s in self.streams.values()],
        }

    def load(self, data: Dict[str, Any]) -> None:
        self.streams = {}
        self.by_beneficiary = {}
        for raw in data.get("streams", []):
            self.store(Stream.from_dict(raw))
        self.handle_counter = int(data.get("handle_counter", len(self.streams)))


ADMISSION_POLICIES = {
    KeyedAdmission.name: KeyedAdmission,
    InstanceAdmission.name: InstanceAdmission,
}


def build_admission(name: str) -> AdmissionPolicy:
    try:
        return ADMISSION_POLICIES[name]()
    except KeyError as exc:
        raise InvalidParametersError(f"Unknown admission policy: {name}") from exc
