"""Polymarket copy-signal tracker.

Polls curated wallets, reconciles their picks, and publishes consensus
signals when enough of them converge on the same outcome.
"""

__version__ = "0.1.0"
