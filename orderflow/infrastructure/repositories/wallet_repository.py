import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from orderflow.interfaces.IWalletRepository import IWalletRepository
from orderflow.domain.enums import TransactionDirection
from orderflow.domain.models import Wallet, WalletTransaction
from orderflow.domain.pricing import CENT
from orderflow.infrastructure.database import SessionLocal

logger = logging.getLogger(__name__)


class PostgresWalletRepository(IWalletRepository):

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def credit(self, owner_ref, amount: Decimal, description: str,
               order_id: Optional[int] = None, idempotency_key: Optional[str] = None):
        # A unique-key race (two first-time wallets, or two replays of the same key)
        # loses with an IntegrityError; the second pass then sees the winner's row.
        for attempt in range(2):
            try:
                return self._credit_once(owner_ref, amount, description, order_id, idempotency_key)
            except IntegrityError as e:
                if attempt == 1:
                    raise
                logger.warning(f"⚠️ Wallet credit for {owner_ref.key()} hit a unique constraint ({e.orig}). Retrying.")

    def _credit_once(self, owner_ref, amount, description, order_id, idempotency_key):
        session = self.session_factory()
        try:
            if idempotency_key:
                existing = (
                    session.query(WalletTransaction)
                    .filter(WalletTransaction.idempotency_key == idempotency_key)
                    .one_or_none()
                )
                if existing is not None:
                    logger.info(f"↩️ Credit {idempotency_key} already applied (txn {existing.id}). Skipping.")
                    return session.get(Wallet, existing.wallet_id), existing, False

            wallet = self._find_wallet(session, owner_ref, for_update=True)
            if wallet is None:
                logger.info(f"📝 Creating new wallet for {owner_ref.key()}")
                wallet = Wallet(owner_type=owner_ref.owner_type, owner_id=owner_ref.owner_id, balance=0)
                session.add(wallet)
                session.flush()

            # Balance and ledger row go in the same transaction; neither commits alone.
            (
                session.query(Wallet)
                .filter(Wallet.id == wallet.id)
                .update({Wallet.balance: Wallet.balance + amount}, synchronize_session=False)
            )
            txn = WalletTransaction(
                wallet_id=wallet.id,
                amount=amount,
                direction=TransactionDirection.CREDIT,
                description=description,
                order_id=order_id,
                idempotency_key=idempotency_key,
            )
            session.add(txn)
            session.commit()

            wallet = session.get(Wallet, wallet.id, populate_existing=True)
            session.refresh(txn)
            return wallet, txn, True
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_or_create_wallet(self, owner_ref) -> Wallet:
        session = self.session_factory()
        try:
            wallet = self._find_wallet(session, owner_ref)
            if wallet is None:
                wallet = Wallet(owner_type=owner_ref.owner_type, owner_id=owner_ref.owner_id, balance=0)
                session.add(wallet)
                try:
                    session.commit()
                except IntegrityError:
                    # Someone else created it in between.
                    session.rollback()
                    wallet = self._find_wallet(session, owner_ref)
            return wallet
        finally:
            session.close()

    def list_transactions(self, owner_ref, offset: int = 0, limit: int = 50):
        session = self.session_factory()
        try:
            wallet = self._find_wallet(session, owner_ref)
            if wallet is None:
                return [], 0
            query = session.query(WalletTransaction).filter(WalletTransaction.wallet_id == wallet.id)
            total = query.count()
            rows = (
                query.order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return rows, total
        finally:
            session.close()

    def ledger_sum(self, wallet_id: int) -> Decimal:
        """Signed sum of the log; what the cached balance must always equal."""
        session = self.session_factory()
        try:
            signed = case(
                (WalletTransaction.direction == TransactionDirection.CREDIT, WalletTransaction.amount),
                else_=-WalletTransaction.amount,
            )
            total = (
                session.query(func.coalesce(func.sum(signed), 0))
                .filter(WalletTransaction.wallet_id == wallet_id)
                .scalar()
            )
            return Decimal(str(total)).quantize(CENT)
        finally:
            session.close()

    @staticmethod
    def _find_wallet(session, owner_ref, for_update: bool = False) -> Optional[Wallet]:
        query = session.query(Wallet).filter(
            Wallet.owner_type == owner_ref.owner_type,
            Wallet.owner_id == owner_ref.owner_id,
        )
        if for_update:
            # Row lock on Postgres; ignored by SQLite, where the write lock serializes anyway.
            query = query.with_for_update()
        return query.one_or_none()
