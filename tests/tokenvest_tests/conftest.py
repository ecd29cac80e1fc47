from pathlib import Path
import sys

import pytest

# Make the src layout importable without installing the package
project_root = Path(__file__).resolve().parents[2]
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from tokenvest.core.access_control import AccessControl
from tokenvest.core.admission import InstanceAdmission, KeyedAdmission
from tokenvest.core.custody import LedgerCustody
from tokenvest.core.events import InMemoryEventSink
from tokenvest.core.stream_registry import StreamRegistry
from tokenvest.core.structured_logger import StructuredLogger
from tokenvest.core.vesting_math import CliffPolicy

ADMIN = "0xadmin"
ALICE = "0xalice"
BOB = "0xbob"
ESCROW = "0xescrow"
ADMIN_FUNDS = 1_000_000


class ManualClock:
    def __init__(self, start_time: int):
        self.current_time = start_time

    def now(self) -> int:
        return self.current_time

    def advance(self, seconds: int):
        self.current_time += seconds

    def set(self, timestamp: int):
        self.current_time = timestamp


@pytest.fixture
def clock():
    return ManualClock(start_time=50)


@pytest.fixture
def custody():
    ledger = LedgerCustody(asset="TOKEN")
    ledger.mint(ADMIN, ADMIN_FUNDS)
    return ledger


@pytest.fixture
def test_logger():
    return StructuredLogger("tokenvest.tests")


@pytest.fixture
def make_registry(custody, clock, test_logger):
    """Factory building registries that share the custody ledger and clock."""

    def _make(admission="keyed", cliff_policy=CliffPolicy.DELAY, **kwargs):
        policy = KeyedAdmission() if admission == "keyed" else InstanceAdmission()
        kwargs.setdefault("access_control", AccessControl(admin=ADMIN))
        kwargs.setdefault("event_sink", InMemoryEventSink())
        return StreamRegistry(
            custody=custody,
            admission=policy,
            cliff_policy=cliff_policy,
            escrow_account=ESCROW,
            time_provider=clock.now,
            logger=test_logger,
            **kwargs,
        )

    return _make


@pytest.fixture(params=["keyed", "instances"])
def admission_name(request):
    return request.param


@pytest.fixture
def claim():
    """Claim a stream the way its admission policy expects."""

    def _claim(registry: StreamRegistry, stream_id: str) -> int:
        if registry.admission.name == "keyed":
            return registry.claim_tokens(stream_id)
        return registry.claim_tokens("0xanyone", stream_id)

    return _claim
