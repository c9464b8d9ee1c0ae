from sqlalchemy import (Column, Integer, String, DateTime, Numeric, Float, ForeignKey,
                        UniqueConstraint, Enum as SAEnum)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from orderflow.infrastructure.database import Base
from orderflow.domain.enums import OrderStatus, Role, TransactionDirection

MONEY = Numeric(10, 2)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(64), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, nullable=False, index=True)
    restaurant_id = Column(Integer, nullable=False, index=True)
    # Stays NULL until the arbiter hands the order to exactly one partner.
    delivery_partner_id = Column(Integer, nullable=True, index=True)
    address_id = Column(Integer, nullable=True)
    customer_phone = Column(String(32), nullable=True)

    status = Column(SAEnum(OrderStatus, native_enum=False, length=32),
                    nullable=False, default=OrderStatus.PLACED, index=True)

    # Written once at creation. Nothing updates these columns afterwards.
    subtotal = Column(MONEY, nullable=False)
    delivery_fee = Column(MONEY, nullable=False)
    handling_charge = Column(MONEY, nullable=False)
    tax = Column(MONEY, nullable=False)
    total_price = Column(MONEY, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("OrderItem", back_populates="order", lazy="selectin",
                         cascade="all, delete-orphan", order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)  # snapshot of the menu price at order time

    order = relationship("Order", back_populates="items")


class DeliveryPartner(Base):
    """Profile rows are owned by the partner onboarding service; the core only reads them."""
    __tablename__ = "delivery_partners"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=True)
    rating = Column(Float, default=0.0)
    total_ratings = Column(Integer, default=0)
    vehicle_type = Column(String(32), nullable=True)
    vehicle_number = Column(String(32), nullable=True)


class Wallet(Base):
    __tablename__ = "wallets"
    # One wallet per account holder; owner_type makes customer/restaurant/partner exclusive.
    __table_args__ = (UniqueConstraint("owner_type", "owner_id", name="uq_wallet_owner"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_type = Column(SAEnum(Role, native_enum=False, length=32), nullable=False)
    owner_id = Column(Integer, nullable=False)
    balance = Column(MONEY, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    transactions = relationship("WalletTransaction", back_populates="wallet", lazy="raise")


class WalletTransaction(Base):
    """Append-only. Rows are inserted by the ledger and never updated."""
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)
    amount = Column(MONEY, nullable=False)
    direction = Column(SAEnum(TransactionDirection, native_enum=False, length=16), nullable=False)
    description = Column(String(255), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    idempotency_key = Column(String(128), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    wallet = relationship("Wallet", back_populates="transactions")
