"""Transaction lifecycle — sequence leasing, retry policy, submission."""

from __future__ import annotations

from domain_clients.lifecycle.manager import LifecycleStage, TxLifecycleManager, TxOutcome
from domain_clients.lifecycle.retry import backoff_delay, backoff_schedule
from domain_clients.lifecycle.sequencer import AccountSequencer, SequenceLease

__all__ = [
    "AccountSequencer",
    "LifecycleStage",
    "SequenceLease",
    "TxLifecycleManager",
    "TxOutcome",
    "backoff_delay",
    "backoff_schedule",
]
