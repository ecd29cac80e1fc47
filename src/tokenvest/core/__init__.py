"""
tokenvest Core Module

Core functionality for the vesting engine including:
- Unlock schedule arithmetic
- Admin and creation authorization
- Stream registry and admission policies
- Escrow custody ledger
- Logging, configuration, metrics and snapshot storage
"""

from .access_control import AccessControl, AdminAuthorizer, SelfAdministeredAuthorizer, StreamCreatorAuthorizer
from .admission import InstanceAdmission, KeyedAdmission
from .custody import Custody, LedgerCustody
from .stream import Stream
from .stream_registry import StreamRegistry
from .vesting_math import CliffPolicy, unlocked_amount

__all__ = [
    "AccessControl",
    "AdminAuthorizer",
    "SelfAdministeredAuthorizer",
    "StreamCreatorAuthorizer",
    "InstanceAdmission",
    "KeyedAdmission",
    "Custody",
    "LedgerCustody",
    "Stream",
    "StreamRegistry",
    "CliffPolicy",
    "unlocked_amount",
]
