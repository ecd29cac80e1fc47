"""
Admin Access Control for the vesting engine.

Owns the admin identity and its two-phase handover, the legacy
``stream_creator`` role, and the authorizers that decide who may create
streams.

Handover flow:
    ac = AccessControl(admin="0xadmin")
    ac.set_pending_admin("0xadmin", "0xnew")   # old admin keeps control
    ac.accept_admin("0xnew")                   # new admin confirms

Identity is a plain address string; proving that a caller controls an
address is the job of the surrounding transport.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .exceptions import InvalidParametersError, NotAuthorizedError

logger = logging.getLogger(__name__)


def normalize_address(address: str) -> str:
    """Canonical form used for every identity comparison."""
    if not isinstance(address, str) or not address.strip():
        raise InvalidParametersError("Address cannot be empty")
    return address.strip().lower()


@dataclass
class AccessControl:
    """
    Process-wide admin singleton with a two-phase handover.

    The current admin stays fully in control until the pending admin
    actively accepts, so the role can never be handed to an unreachable
    identity.
    """

    admin: str
    pending_admin: Optional[str] = None

    # Legacy variant: a distinct identity allowed to create streams
    stream_creator: Optional[str] = None

    # Audit trail of role changes
    role_changes: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.admin = normalize_address(self.admin)
        if self.pending_admin is not None:
            self.pending_admin = normalize_address(self.pending_admin)
        if self.stream_creator is not None:
            self.stream_creator = normalize_address(self.stream_creator)

    def is_admin(self, identity: str) -> bool:
        return normalize_address(identity) == self.admin

    def require_admin(self, caller: str) -> str:
        """
        Ensure ``caller`` is the admin.

        Returns:
            Normalized caller address

        Raises:
            NotAuthorizedError: If caller is not the admin
        """
        caller_norm = normalize_address(caller)
        if caller_norm != self.admin:
            logger.warning(
                "Access denied: caller is not admin",
                extra={
                    "event": "access_control.not_admin",
                    "caller": caller_norm[:10],
                },
            )
            raise NotAuthorizedError(
                f"Unauthorized: caller {caller_norm[:10]} is not the admin",
                details={"caller": caller_norm},
            )
        return caller_norm

    def set_pending_admin(self, caller: str, new_admin: str) -> None:
        """
        Nominate a new admin. Only the current admin may do this.

        Raises:
            NotAuthorizedError: If caller is not the admin
        """
        caller_norm = self.require_admin(caller)
        new_admin_norm = normalize_address(new_admin)
        self.pending_admin = new_admin_norm
        self._record("nominate_admin", caller_norm, new_admin_norm)

    def accept_admin(self, caller: str) -> None:
        """
        Complete the handover. Only the pending admin may do this.

        Raises:
            NotAuthorizedError: If caller is not the pending admin
        """
        caller_norm = normalize_address(caller)
        if self.pending_admin is None or caller_norm != self.pending_admin:
            logger.warning(
                "Access denied: caller is not the pending admin",
                extra={
                    "event": "access_control.not_pending_admin",
                    "caller": caller_norm[:10],
                },
            )
            raise NotAuthorizedError(
                f"Unauthorized: caller {caller_norm[:10]} is not the pending admin",
                details={"caller": caller_norm},
            )
        previous = self.admin
        self.admin = caller_norm
        self.pending_admin = None
        self._record("accept_admin", caller_norm, caller_norm, previous=previous)

    def set_stream_creator(self, caller: str, creator: Optional[str]) -> None:
        """
        Assign (or clear, with ``None``) the legacy stream creator role.

        Raises:
            NotAuthorizedError: If caller is not the admin
        """
        caller_norm = self.require_admin(caller)
        self.stream_creator = normalize_address(creator) if creator is not None else None
        self._record("set_stream_creator", caller_norm, self.stream_creator or "")

    def _record(self, action: str, caller: str, subject: str, **extra: Any) -> None:
        entry = {
            "action": action,
            "caller": caller,
            "subject": subject,
            "timestamp": time.time(),
            **extra,
        }
        self.role_changes.append(entry)
        logger.info(
            "Role change",
            extra={
                "event": f"access_control.{action}",
                "caller": caller[:10],
                "subject": subject[:10],
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "admin": self.admin,
            "pending_admin": self.pending_admin,
            "stream_creator": self.stream_creator,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessControl":
        return cls(
            admin=data["admin"],
            pending_admin=data.get("pending_admin"),
            stream_creator=data.get("stream_creator"),
        )


@runtime_checkable
class Authorizer(Protocol):
    """Decides whether a caller may create a stream."""

    name: str

    def authorize_create(self, caller: str) -> str:
        """Return the normalized caller or raise NotAuthorizedError."""
        ...


class AdminAuthorizer:
    """Only the global admin may create streams."""

    name = "admin"

    def __init__(self, access_control: AccessControl):
        self.access_control = access_control

    def authorize_create(self, caller: str) -> str:
        return self.access_control.require_admin(caller)


class StreamCreatorAuthorizer:
    """The admin or the separately assigned stream creator may create streams."""

    name = "stream_creator"

    def __init__(self, access_control: AccessControl):
        self.access_control = access_control

    def authorize_create(self, caller: str) -> str:
        caller_norm = normalize_address(caller)
        creator = self.access_control.stream_creator
        if creator is not None and caller_norm == creator:
            return caller_norm
        return self.access_control.require_admin(caller_norm)


class SelfAdministeredAuthorizer:
    """Any caller may create a stream and becomes its owner of record."""

    name = "self_administered"

    def authorize_create(self, caller: str) -> str:
        return normalize_address(caller)


AUTHORIZERS = {
    AdminAuthorizer.name: AdminAuthorizer,
    StreamCreatorAuthorizer.name: StreamCreatorAuthorizer,
    SelfAdministeredAuthorizer.name: SelfAdministeredAuthorizer,
}


def build_authorizer(name: str, access_control: AccessControl) -> Authorizer:
    """Rebuild a named authorizer, used when restoring a snapshot."""
    if name == SelfAdministeredAuthorizer.name:
        return SelfAdministeredAuthorizer()
    try:
        return AUTHORIZERS[name](access_control)
    except KeyError as exc:
        raise InvalidParametersError(f"Unknown authorizer: {name}") from exc
