from .ledger_models import Account, TransactionSet, JournalEntry, JournalLine

__all__ = ["Account", "TransactionSet", "JournalEntry", "JournalLine"]
