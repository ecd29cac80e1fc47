"""
Property-based tests for unlock-schedule and claim invariants.

The unlocked amount must be monotonic in time, bounded by the total, equal
to the cliff baseline before unlocking begins and to the total from the end
of the window on. Any sequence of claims releases exactly the total and
never more.

Uses Hypothesis for property-based testing with random inputs.
"""

import pytest
from hypothesis import Phase, assume, given, settings, strategies as st

from tokenvest.core.access_control import AccessControl
from tokenvest.core.admission import InstanceAdmission, KeyedAdmission
from tokenvest.core.custody import LedgerCustody
from tokenvest.core.exceptions import NothingToClaimError
from tokenvest.core.stream_registry import StreamRegistry
from tokenvest.core.structured_logger import StructuredLogger
from tokenvest.core.vesting_math import (
    CliffPolicy,
    cliff_baseline,
    unlock_begin_time,
    unlock_end_time,
    unlocked_amount,
)

pytestmark = pytest.mark.property

policies = st.sampled_from([CliffPolicy.DELAY, CliffPolicy.IMMEDIATE])


@st.composite
def schedules(draw):
    """Valid (policy, total, start, cliff, duration) tuples."""
    policy = draw(policies)
    total = draw(st.integers(min_value=1, max_value=10**24))
    start = draw(st.integers(min_value=1, max_value=10**9))
    if policy is CliffPolicy.IMMEDIATE:
        cliff = draw(st.integers(min_value=0, max_value=total))
        min_duration = 0 if cliff == total else 1
    else:
        cliff = draw(st.integers(min_value=0, max_value=10**8))
        min_duration = 1
    duration = draw(st.integers(min_value=min_duration, max_value=10**8))
    return policy, total, start, cliff, duration


class TestUnlockScheduleInvariants:
    @given(schedule=schedules(), t1=st.integers(0, 2 * 10**9), t2=st.integers(0, 2 * 10**9))
    @settings(max_examples=200, phases=[Phase.generate, Phase.target])
    def test_monotonic_in_time(self, schedule, t1, t2):
        policy, total, start, cliff, duration = schedule
        early, late = min(t1, t2), max(t1, t2)
        assert unlocked_amount(total, start, cliff, duration, early, policy) <= unlocked_amount(
            total, start, cliff, duration, late, policy
        )

    @given(schedule=schedules(), now=st.integers(0, 2 * 10**9))
    @settings(max_examples=200, phases=[Phase.generate, Phase.target])
    def test_bounded_by_total(self, schedule, now):
        policy, total, start, cliff, duration = schedule
        assert 0 <= unlocked_amount(total, start, cliff, duration, now, policy) <= total

    @given(schedule=schedules(), after=st.integers(0, 10**9))
    @settings(max_examples=100, phases=[Phase.generate, Phase.target])
    def test_fully_unlocked_from_end(self, schedule, after):
        policy, total, start, cliff, duration = schedule
        end = unlock_end_time(start, cliff, duration, policy)
        assert unlocked_amount(total, start, cliff, duration, end + after, policy) == total

    @given(schedule=schedules(), data=st.data())
    @settings(max_examples=100, phases=[Phase.generate, Phase.target])
    def test_nothing_before_start(self, schedule, data):
        policy, total, start, cliff, duration = schedule
        now = data.draw(st.integers(0, start - 1))
        assert unlocked_amount(total, start, cliff, duration, now, policy) == 0

    @given(schedule=schedules())
    @settings(max_examples=100, phases=[Phase.generate, Phase.target])
    def test_baseline_at_unlock_begin(self, schedule):
        policy, total, start, cliff, duration = schedule
        assume(duration > 0)
        begin = unlock_begin_time(start, cliff, policy)
        assert unlocked_amount(total, start, cliff, duration, begin, policy) == cliff_baseline(
            cliff, policy
        )


class TestClaimConservation:
    @given(
        schedule=schedules(),
        claim_offsets=st.lists(st.integers(0, 3 * 10**8), min_size=1, max_size=8),
        instances=st.booleans(),
    )
    @settings(max_examples=60, phases=[Phase.generate, Phase.target], deadline=None)
    def test_claims_release_exactly_total(self, schedule, claim_offsets, instances):
        policy, total, start, cliff, duration = schedule
        clock = {"now": start - 1}
        custody = LedgerCustody(asset="TOKEN")
        custody.mint("0xadmin", total)
        registry = StreamRegistry(
            custody=custody,
            access_control=AccessControl(admin="0xadmin"),
            admission=InstanceAdmission() if instances else KeyedAdmission(),
            cliff_policy=policy,
            escrow_account="0xescrow",
            time_provider=lambda: clock["now"],
            logger=StructuredLogger("tokenvest.tests.property"),
        )
        stream_id = registry.create_vesting_stream("0xadmin", "0xalice", total, start, cliff, duration)

        released = 0
        for offset in sorted(claim_offsets):
            clock["now"] = start + offset
            expected = registry.get_claimable_amount(stream_id)
            try:
                amount = registry.claim_tokens("0xalice", stream_id)
            except NothingToClaimError:
                assert expected == 0
                continue
            assert amount == expected
            released += amount
            assert custody.balance("0xalice") == released
            assert custody.balance("0xescrow") == total - released
            assert registry.total_locked == total - released
            if released == total:
                break

        assert released <= total
        if released < total:
            clock["now"] = unlock_end_time(start, cliff, duration, policy)
            released += registry.claim_tokens("0xalice", stream_id)
        assert released == total
        assert custody.balance("0xescrow") == 0
