"""Storage layer - Database schemas and repositories."""

from polymarket_copy_signals.storage.database import (
    STORE_UNAVAILABLE_ERRORS,
    DatabaseManager,
    engine_options,
    normalize_database_url,
)
from polymarket_copy_signals.storage.models import (
    OUTCOME_LOSS,
    OUTCOME_PENDING,
    OUTCOME_WIN,
    Base,
    NoteModel,
    SignalModel,
    WalletLivePickModel,
    WalletModel,
)
from polymarket_copy_signals.storage.repos import (
    LivePickDTO,
    LivePickRepository,
    NoteDTO,
    NoteRepository,
    SignalDTO,
    SignalRepository,
    WalletDTO,
    WalletRepository,
)

__all__ = [
    "STORE_UNAVAILABLE_ERRORS",
    "OUTCOME_LOSS",
    "OUTCOME_PENDING",
    "OUTCOME_WIN",
    "Base",
    "DatabaseManager",
    "LivePickDTO",
    "LivePickRepository",
    "NoteDTO",
    "NoteModel",
    "NoteRepository",
    "SignalDTO",
    "SignalModel",
    "SignalRepository",
    "WalletDTO",
    "WalletLivePickModel",
    "WalletModel",
    "WalletRepository",
    "engine_options",
    "normalize_database_url",
]
