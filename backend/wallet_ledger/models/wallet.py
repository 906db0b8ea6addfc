import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from wallet_ledger.database import Base


class WalletChain:
    POLYGON = "POLYGON"
    BASE = "BASE"


class Wallet(Base):
    __tablename__ = "wallets"
    __table_args__ = (
        UniqueConstraint("profile_id", "blockchain", name="uq_wallet_profile_blockchain"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    profile_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    blockchain = Column(String(20), nullable=False)
    # Stored as received; not unique and not canonically cased
    wallet_address = Column(String, nullable=False, index=True)
    circle_wallet_id = Column(String, nullable=True)
    balance = Column(String(78), default="0")
    passkey_credential = Column(Text, nullable=True)
    wallet_type = Column(String(20), default="modular")
    account_type = Column(String(10), default="SCA")
    currency = Column(String(10), default="USDC")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    profile = relationship("Profile", back_populates="wallets")
    transactions = relationship("Transaction", back_populates="wallet")
