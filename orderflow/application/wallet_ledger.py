import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from orderflow.domain.errors import ValidationFailed, WalletOperationFailed
from orderflow.interfaces.IWalletRepository import IWalletRepository

logger = logging.getLogger(__name__)


def delivery_credit_key(order_id: int) -> str:
    """Natural idempotency key for the payout tied to one delivered order."""
    return f"order:{order_id}:DELIVERED-credit"


class WalletLedger:
    """
    Per-owner balance plus append-only transaction log.

    The log is the source of truth; the balance column is a projection kept
    in step inside the same DB transaction as every insert.
    """

    def __init__(self, wallet_repo: IWalletRepository, publisher):
        self.wallet_repo = wallet_repo
        self.publisher = publisher

    def credit(self, owner_ref, amount, description: str,
               linked_order_id: Optional[int] = None,
               idempotency_key: Optional[str] = None):
        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationFailed(f"Invalid amount: {amount}")
        if amount <= 0:
            raise ValidationFailed("Valid amount is required")

        try:
            wallet, txn, applied = self.wallet_repo.credit(
                owner_ref, amount, description,
                order_id=linked_order_id, idempotency_key=idempotency_key,
            )
        except SQLAlchemyError as e:
            raise WalletOperationFailed(
                f"Credit of ₹{amount} to {owner_ref.key()} failed: {e}"
            ) from e

        if applied:
            logger.info(f"💰 Wallet {owner_ref.key()} credited ₹{amount} → balance ₹{wallet.balance}")
            self.publisher.wallet_updated(owner_ref, amount, wallet.balance,
                                          order_id=linked_order_id, message=description)
        return txn

    def get_wallet(self, owner_ref):
        return self.wallet_repo.get_or_create_wallet(owner_ref)

    def list_transactions(self, owner_ref, page: int = 1, limit: int = 50) -> dict:
        if page < 1 or limit < 1:
            raise ValidationFailed("page and limit must be positive")
        rows, total = self.wallet_repo.list_transactions(owner_ref, offset=(page - 1) * limit, limit=limit)
        return {
            "transactions": rows,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": -(-total // limit),
            },
        }

    def is_consistent(self, owner_ref) -> bool:
        """Reconciliation check: cached balance == signed sum of the log."""
        wallet = self.wallet_repo.get_or_create_wallet(owner_ref)
        return Decimal(wallet.balance) == self.wallet_repo.ledger_sum(wallet.id)
