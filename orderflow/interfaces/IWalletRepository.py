from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional


class IWalletRepository(ABC):
    @abstractmethod
    def credit(self, owner_ref, amount: Decimal, description: str,
               order_id: Optional[int] = None, idempotency_key: Optional[str] = None):
        """Returns (wallet, transaction, applied). `applied` is False on a replayed key."""
        pass

    @abstractmethod
    def get_or_create_wallet(self, owner_ref):
        pass

    @abstractmethod
    def list_transactions(self, owner_ref, offset: int = 0, limit: int = 50):
        """Returns (transactions newest first, total count)."""
        pass

    @abstractmethod
    def ledger_sum(self, wallet_id: int) -> Decimal:
        pass
