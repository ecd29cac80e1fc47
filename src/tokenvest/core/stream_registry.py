"""
tokenvest - Stream Registry

Owns every vesting stream and orchestrates their lifecycle:

- ``create_vesting_stream``: authorize, validate, escrow the funds, store
- ``claim_tokens``: release the unlocked-but-unclaimed amount to the
  beneficiary recorded on the stream
- views: claimable amount, pure vested-amount calculation, stream lookup

Every operation validates fully before it mutates anything. The custody
transfer is the last step that can fail, so a rejected operation leaves the
registry and the balances untouched.
"""

from __future__ import annotations

import dataclasses
import time
from typing import Any, Callable, Dict, List, Optional

from . import vesting_math, vesting_metrics
from .access_control import (
    AccessControl,
    AdminAuthorizer,
    Authorizer,
    SelfAdministeredAuthorizer,
    build_authorizer,
    normalize_address,
)
from .admission import AdmissionPolicy, InstanceAdmission, KeyedAdmission, build_admission
from .config import DEFAULT_ESCROW_ACCOUNT
from .custody import Custody
from .events import (
    STREAM_COMPLETED,
    STREAM_CREATED,
    TOKENS_CLAIMED,
    EventSink,
    InMemoryEventSink,
    LoggingEventSink,
    VestingEvent,
)
from .exceptions import (
    InvalidParametersError,
    NotAuthorizedError,
    NothingToClaimError,
    StreamNotFoundError,
    VestingError,
)
from .stream import Stream
from .structured_logger import StructuredLogger, get_structured_logger
from .vesting_math import CliffPolicy


def _require_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParametersError(
            f"{name} must be an integer", details={"field": name, "value": repr(value)}
        )
    if value < 0:
        raise InvalidParametersError(
            f"{name} cannot be negative", details={"field": name, "value": value}
        )
    return value


def validate_schedule(total_amount: int, cliff: int, duration: int, policy: CliffPolicy) -> None:
    """
    Check integer schedule parameters against the cliff policy.

    Raises:
        InvalidParametersError: If the schedule could unlock more than
            ``total_amount`` or has no unlock window
    """
    if policy is CliffPolicy.IMMEDIATE:
        if cliff > total_amount:
            raise InvalidParametersError(
                "cliff amount exceeds total_amount",
                details={"cliff": cliff, "total_amount": total_amount},
            )
        if duration == 0 and cliff != total_amount:
            raise InvalidParametersError(
                "duration must be positive unless the whole amount unlocks at the cliff"
            )
    elif duration == 0:
        raise InvalidParametersError("duration must be positive")


class StreamRegistry:
    """
    Vesting stream registry.

    The admission policy and the cliff policy are fixed at construction.
    When no authorizer is given, keyed registries only let the admin create
    streams while instance registries let any caller create (and own) one.
    """

    def __init__(
        self,
        custody: Custody,
        access_control: AccessControl,
        admission: Optional[AdmissionPolicy] = None,
        cliff_policy: CliffPolicy | str = CliffPolicy.DELAY,
        authorizer: Optional[Authorizer] = None,
        escrow_account: str = DEFAULT_ESCROW_ACCOUNT,
        asset: Optional[str] = None,
        event_sink: Optional[EventSink] = None,
        time_provider: Optional[Callable[[], int]] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.custody = custody
        self.access_control = access_control
        self.admission = admission if admission is not None else KeyedAdmission()
        self.cliff_policy = CliffPolicy.parse(cliff_policy)
        if authorizer is None:
            if isinstance(self.admission, InstanceAdmission):
                authorizer = SelfAdministeredAuthorizer()
            else:
                authorizer = AdminAuthorizer(access_control)
        self.authorizer = authorizer
        self.escrow_account = normalize_address(escrow_account)
        self.asset = asset or getattr(custody, "asset", "TOKEN")
        self.event_sink = event_sink if event_sink is not None else InMemoryEventSink()
        self._time_provider = time_provider or (lambda: int(time.time()))
        self.logger = logger or get_structured_logger()

        # Units currently held in escrow for live streams, and released so far
        self.total_locked = 0
        self.total_claimed = 0

        self.custody.ensure_recipient_can_receive(self.escrow_account, self.asset)
        self.logger.info(
            "StreamRegistry initialized.",
            admission=self.admission.name,
            cliff_policy=self.cliff_policy.value,
            authorizer=self.authorizer.name,
            asset=self.asset,
            deterministic_clock=time_provider is not None,
        )

    def _current_time(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    # ==================== Admin Operations ====================

    def set_pending_admin(self, caller: str, new_admin: str) -> None:
        """Nominate a new admin (current admin only)."""
        try:
            self.access_control.set_pending_admin(caller, new_admin)
        except VestingError as exc:
            self._reject("set_pending_admin", exc, caller=caller)
            raise
        self.logger.admin_event("pending_admin_set", caller, pending_admin=new_admin)

    def accept_admin(self, caller: str) -> None:
        """Complete the admin handover (pending admin only)."""
        try:
            self.access_control.accept_admin(caller)
        except VestingError as exc:
            self._reject("accept_admin", exc, caller=caller)
            raise
        self.logger.admin_event("admin_accepted", caller)

    def set_stream_creator(self, caller: str, creator: Optional[str]) -> None:
        """Assign the legacy stream creator role (admin only)."""
        try:
            self.access_control.set_stream_creator(caller, creator)
        except VestingError as exc:
            self._reject("set_stream_creator", exc, caller=caller)
            raise
        self.logger.admin_event("stream_creator_set", caller, stream_creator=creator or "")

    # ==================== Stream Lifecycle ====================

    def create_vesting_stream(
        self,
        caller: str,
        beneficiary: str,
        total_amount: int,
        start_time: int,
        cliff: int,
        duration: int,
    ) -> str:
        """
        Create a stream and move ``total_amount`` from the caller into escrow.

        Args:
            caller: Identity creating (and funding) the stream
            beneficiary: Recipient of the unlocked funds
            total_amount: Units committed, must be positive
            start_time: Instant unlocking begins, must be strictly in the future
            cliff: Cliff duration or cliff amount, per the registry's cliff policy
            duration: Linear unlock window length

        Returns:
            Identifier of the new stream (beneficiary address or handle)

        Raises:
            NotAuthorizedError: Caller may not create streams
            InvalidParametersError: Parameters fail validation
            StreamAlreadyExistsError: Beneficiary slot is taken (keyed admission)
            InsufficientBalanceError: Caller cannot fund the stream
        """
        now = self._current_time()
        try:
            creator = self.authorizer.authorize_create(caller)
            beneficiary_norm = normalize_address(beneficiary)
            self._validate_stream_params(total_amount, start_time, cliff, duration, now)
            self.admission.check_admission(beneficiary_norm)
            stream_id = self.admission.next_stream_id(creator, beneficiary_norm)
            self.custody.transfer(creator, self.escrow_account, total_amount)
        except VestingError as exc:
            self._reject("create", exc, caller=caller, beneficiary=beneficiary)
            raise

        stream = Stream(
            stream_id=stream_id,
            beneficiary=beneficiary_norm,
            owner=creator,
            total_amount=total_amount,
            start_time=start_time,
            cliff=cliff,
            duration=duration,
            cliff_policy=self.cliff_policy,
            claimed_amount=0,
            created_at=now,
        )
        self.admission.store(stream)
        self.total_locked += total_amount

        vesting_metrics.record_stream_created(self.asset, self.admission.name)
        vesting_metrics.update_escrow_locked(self.asset, self.total_locked)
        self._emit(
            STREAM_CREATED,
            stream,
            total_amount,
            now,
            owner=creator,
            start_time=start_time,
            cliff=cliff,
            duration=duration,
            cliff_policy=self.cliff_policy.value,
        )
        return stream_id

    def claim_tokens(self, caller: str, stream_id: Optional[str] = None) -> int:
        """
        Release everything unlocked but not yet claimed.

        Under keyed admission the caller claims their own stream; under
        instance admission anyone holding ``stream_id`` may claim. Funds always
        go to the beneficiary recorded on the stream.

        Returns:
            Amount transferred to the beneficiary

        Raises:
            StreamNotFoundError: No stream for the caller/handle
            NothingToClaimError: Nothing unlocked since the last claim
        """
        now = self._current_time()
        try:
            caller_norm = normalize_address(caller)
            ref = normalize_address(stream_id) if stream_id is not None else None
            key = self.admission.resolve_claim(caller_norm, ref)
            stream = self._require_stream(key)
            claimable = stream.claimable_at(now)
            if claimable == 0:
                raise NothingToClaimError(
                    f"Nothing to claim for stream {stream.stream_id[:10]}",
                    details={
                        "stream_id": stream.stream_id,
                        "now": now,
                        "unlock_begin_time": stream.unlock_begin_time,
                        "claimed_amount": stream.claimed_amount,
                    },
                )
            self.custody.ensure_recipient_can_receive(stream.beneficiary, self.asset)
            self.custody.transfer(self.escrow_account, stream.beneficiary, claimable)
        except VestingError as exc:
            self._reject("claim", exc, caller=caller, stream_id=stream_id or "")
            raise

        stream.claimed_amount += claimable
        self.total_locked -= claimable
        self.total_claimed += claimable
        completed = stream.is_fully_claimed

        vesting_metrics.record_claim(self.asset, claimable, completed)
        vesting_metrics.update_escrow_locked(self.asset, self.total_locked)
        self._emit(
            TOKENS_CLAIMED,
            stream,
            claimable,
            now,
            caller=caller_norm,
            claimed_amount=stream.claimed_amount,
        )

        if completed:
            self.admission.on_completed(stream)
            self._emit(STREAM_COMPLETED, stream, stream.total_amount, now)

        return claimable

    # ==================== View Functions ====================

    def get_claimable_amount(self, stream_ref: str, now: Optional[int] = None) -> int:
        """
        Unlocked minus claimed amount for a stream.

        An absent keyed slot reports 0; an unknown instance handle raises
        StreamNotFoundError.
        """
        at = self._current_time() if now is None else now
        stream = self.admission.get(normalize_address(stream_ref))
        if stream is None:
            if self.admission.missing_claimable_is_zero:
                return 0
            raise StreamNotFoundError(
                f"No stream for {stream_ref[:10]}", details={"stream_ref": stream_ref}
            )
        return stream.claimable_at(at)

    def calculate_vested_amount(
        self,
        total_amount: int,
        start_time: int,
        cliff: int,
        duration: int,
        now: Optional[int] = None,
    ) -> int:
        """Unlocked amount for arbitrary parameters under this registry's cliff policy."""
        for name, value in (
            ("total_amount", total_amount),
            ("start_time", start_time),
            ("cliff", cliff),
            ("duration", duration),
        ):
            _require_int(name, value)
        validate_schedule(total_amount, cliff, duration, self.cliff_policy)
        at = self._current_time() if now is None else _require_int("now", now)
        return vesting_math.unlocked_amount(
            total_amount, start_time, cliff, duration, at, self.cliff_policy
        )

    def get_vesting_stream(self, stream_ref: str) -> Stream:
        """
        Return a copy of the stream record.

        Raises:
            StreamNotFoundError: If no record exists
        """
        return dataclasses.replace(self._require_stream(normalize_address(stream_ref)))

    def exists_vesting_stream(self, stream_ref: str) -> bool:
        return self.admission.get(normalize_address(stream_ref)) is not None

    def get_streams_for_beneficiary(self, beneficiary: str) -> List[Stream]:
        return [
            dataclasses.replace(stream)
            for stream in self.admission.streams_for(normalize_address(beneficiary))
        ]

    def list_streams(self) -> List[Stream]:
        return [dataclasses.replace(stream) for stream in self.admission]

    def get_registry_stats(self) -> Dict[str, Any]:
        streams = list(self.admission)
        return {
            "admission": self.admission.name,
            "cliff_policy": self.cliff_policy.value,
            "asset": self.asset,
            "escrow_account": self.escrow_account,
            "escrow_balance": self.custody.balance(self.escrow_account),
            "total_locked": self.total_locked,
            "total_claimed": self.total_claimed,
            "total_streams": len(streams),
            "live_streams": sum(1 for s in streams if not s.is_fully_claimed),
        }

    # ==================== Internal Functions ====================

    def _validate_stream_params(
        self, total_amount: Any, start_time: Any, cliff: Any, duration: Any, now: int
    ) -> None:
        _require_int("total_amount", total_amount)
        _require_int("start_time", start_time)
        _require_int("cliff", cliff)
        _require_int("duration", duration)

        if total_amount == 0:
            raise InvalidParametersError("total_amount must be positive")
        # start_time == now is rejected: unlocking must not begin at creation
        if start_time <= now:
            raise InvalidParametersError(
                "start_time must be in the future",
                details={"start_time": start_time, "now": now},
            )

        validate_schedule(total_amount, cliff, duration, self.cliff_policy)

    def _require_stream(self, stream_id: str) -> Stream:
        stream = self.admission.get(stream_id)
        if stream is None:
            raise StreamNotFoundError(
                f"No stream for {stream_id[:10]}", details={"stream_ref": stream_id}
            )
        return stream

    def _emit(self, event_type: str, stream: Stream, amount: int, now: int, **data: Any) -> None:
        event = VestingEvent(
            event_type=event_type,
            stream_id=stream.stream_id,
            beneficiary=stream.beneficiary,
            amount=amount,
            timestamp=now,
            data=data,
        )
        self.event_sink.record(event)
        # A logging sink already wrote this fact
        if not isinstance(self.event_sink, LoggingEventSink):
            self.logger.stream_event(event_type, stream.stream_id, stream.beneficiary, amount=amount)

    def _reject(self, operation: str, exc: VestingError, **context: Any) -> None:
        vesting_metrics.record_rejection(operation, exc)
        fields = {k: str(v) for k, v in context.items()}
        if isinstance(exc, NotAuthorizedError):
            self.logger.security_event(
                "unauthorized_call", operation=operation, reason=exc.message, **fields
            )
        else:
            self.logger.warn(
                f"{operation} rejected: {exc.message}",
                operation=operation,
                error_type=type(exc).__name__,
                **fields,
            )

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """Serialize registry state (custody is serialized separately)."""
        return {
            "access_control": self.access_control.to_dict(),
            "admission_policy": self.admission.name,
            "authorizer": self.authorizer.name,
            "cliff_policy": self.cliff_policy.value,
            "escrow_account": self.escrow_account,
            "asset": self.asset,
            "total_locked": self.total_locked,
            "total_claimed": self.total_claimed,
            "admission": self.admission.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        custody: Custody,
        event_sink: Optional[EventSink] = None,
        time_provider: Optional[Callable[[], int]] = None,
        logger: Optional[StructuredLogger] = None,
    ) -> "StreamRegistry":
        """Rebuild a registry from ``to_dict`` output."""
        access_control = AccessControl.from_dict(data["access_control"])
        admission = build_admission(data.get("admission_policy", KeyedAdmission.name))
        admission.load(data.get("admission", {}))
        registry = cls(
            custody=custody,
            access_control=access_control,
            admission=admission,
            cliff_policy=data.get("cliff_policy", CliffPolicy.DELAY.value),
            authorizer=build_authorizer(data.get("authorizer", "admin"), access_control),
            escrow_account=data.get("escrow_account", DEFAULT_ESCROW_ACCOUNT),
            asset=data.get("asset"),
            event_sink=event_sink,
            time_provider=time_provider,
            logger=logger,
        )
        registry.total_locked = int(data.get("total_locked", 0))
        registry.total_claimed = int(data.get("total_claimed", 0))
        return registry
