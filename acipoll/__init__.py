"""Staged, bounded-concurrency poller for ACI fabric controllers."""

__version__ = "1.0.0"
