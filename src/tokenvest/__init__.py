"""
tokenvest - Time-Release Allocation Ledger

Commits a fixed quantity of a fungible asset to a recipient, unlocks it on a
deterministic schedule and lets the recipient withdraw what has unlocked.

Main Components:
- Vesting math: pure unlocked-amount calculation
- Access control: admin handover and stream creation authorization
- Stream registry: stream lifecycle with pluggable admission policies
- Custody: escrow balance ledger
- CLI: command-line access to a persisted registry
"""

__version__ = "0.1.0"
__author__ = "tokenvest Development Team"

__all__ = []
