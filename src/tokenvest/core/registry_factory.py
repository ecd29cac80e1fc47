"""
Registry construction helpers.

Builds a ``StreamRegistry`` backed by a ``LedgerCustody`` from settings, and
converts the pair to and from a single persisted snapshot.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple

from .access_control import AccessControl, StreamCreatorAuthorizer
from .admission import build_admission
from .config import AdmissionMode, VestingSettings
from .custody import LedgerCustody
from .events import EventSink
from .exceptions import CorruptedDataError
from .stream_registry import StreamRegistry
from .structured_logger import StructuredLogger, get_structured_logger


def build_registry(
    settings: VestingSettings,
    admin: str,
    custody: Optional[LedgerCustody] = None,
    stream_creator: Optional[str] = None,
    event_sink: Optional[EventSink] = None,
    time_provider: Optional[Callable[[], int]] = None,
    logger: Optional[StructuredLogger] = None,
) -> StreamRegistry:
    """
    Create a fresh registry for ``admin`` using the configured policies.

    Keyed registries authorize the admin plus the optional legacy
    ``stream_creator`` (assignable later by the admin). Instance registries
    are self-administered unless a ``stream_creator`` is given up front.
    """
    custody = custody or LedgerCustody(asset=settings.asset)
    access_control = AccessControl(admin=admin, stream_creator=stream_creator)
    authorizer = None
    if stream_creator or settings.admission is AdmissionMode.KEYED:
        authorizer = StreamCreatorAuthorizer(access_control)
    return StreamRegistry(
        custody=custody,
        access_control=access_control,
        admission=build_admission(settings.admission.value),
        cliff_policy=settings.cliff,
        authorizer=authorizer,
        escrow_account=settings.escrow_account,
        asset=settings.asset,
        event_sink=event_sink,
        time_provider=time_provider,
        logger=logger or get_structured_logger(log_dir=settings.log_dir or None, log_level=settings.log_level),
    )


def snapshot(registry: StreamRegistry) -> Dict[str, Any]:
    """Registry plus ledger state, ready for ``RegistryStorage.save_to_disk``."""
    custody = registry.custody
    if not isinstance(custody, LedgerCustody):
        raise TypeError("Only LedgerCustody-backed registries can be snapshotted")
    return {"registry": registry.to_dict(), "custody": custody.to_dict()}


def restore(
    state: Dict[str, Any],
    event_sink: Optional[EventSink] = None,
    time_provider: Optional[Callable[[], int]] = None,
    logger: Optional[StructuredLogger] = None,
) -> Tuple[StreamRegistry, LedgerCustody]:
    """Rebuild the registry and its ledger from a snapshot."""
    try:
        custody = LedgerCustody.from_dict(state["custody"])
        registry = StreamRegistry.from_dict(
            state["registry"],
            custody,
            event_sink=event_sink,
            time_provider=time_provider,
            logger=logger,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise CorruptedDataError(f"Snapshot is missing or has invalid fields: {exc}") from exc
    return registry, custody
