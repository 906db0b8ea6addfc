import uuid
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from wallet_ledger.database import Base


class TransactionType:
    USDC_TRANSFER_IN = "USDC_TRANSFER_IN"
    USDC_TRANSFER_OUT = "USDC_TRANSFER_OUT"


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("wallet_id", "circle_transaction_id", name="uq_transaction_wallet_correlation"),
    )

    # Circle transfer id when known, otherwise generated
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    wallet_id = Column(String(36), ForeignKey("wallets.id"), nullable=False)
    profile_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    transaction_type = Column(String(40), nullable=False)
    amount = Column(Numeric(36, 18), default=0)
    currency = Column(String(10), default="USDC")
    status = Column(String(30), nullable=True)
    circle_transaction_id = Column(String, nullable=True, index=True)
    network_id = Column(Integer, nullable=True)
    network_name = Column(String(50), nullable=True)
    circle_contract_address = Column(String, nullable=True)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    wallet = relationship("Wallet", back_populates="transactions")
