from typing import Optional
from wallet_ledger.models.wallet import WalletChain

# Circle blockchain identifiers (testnets)
MATIC_AMOY = "MATIC-AMOY"
BASE_SEPOLIA = "BASE-SEPOLIA"

POLYGON_AMOY_ID = 80002
BASE_SEPOLIA_ID = 84532
# Network id recorded on ledger rows written from Base webhook notifications
BASE_LEDGER_NETWORK_ID = 421614

NETWORK_TO_BLOCKCHAIN = {
    POLYGON_AMOY_ID: MATIC_AMOY,
    BASE_SEPOLIA_ID: BASE_SEPOLIA,
}

# Also covers the network ids stamped on ledger rows
LEDGER_NETWORK_TO_BLOCKCHAIN = {
    **NETWORK_TO_BLOCKCHAIN,
    BASE_LEDGER_NETWORK_ID: BASE_SEPOLIA,
}

NETWORK_NAMES = {
    POLYGON_AMOY_ID: "Polygon Amoy",
    BASE_SEPOLIA_ID: "Base Sepolia",
    BASE_LEDGER_NETWORK_ID: "Base Sepolia",
}


def circle_blockchain_for(chain: str) -> str:
    """Map a local chain name ("polygon", "BASE", ...) to Circle's blockchain tag.

    Anything that is neither polygon nor base falls back to Polygon Amoy.
    """
    name = (chain or "").lower()
    if "polygon" in name:
        return MATIC_AMOY
    if "base" in name:
        return BASE_SEPOLIA
    return MATIC_AMOY


def alternate_blockchain(blockchain: str) -> str:
    return BASE_SEPOLIA if "MATIC" in blockchain else MATIC_AMOY


def chain_type_for(blockchain: Optional[str]) -> str:
    """Chain type ("polygon"/"base") for a notification's blockchain tag."""
    return "polygon" if blockchain == MATIC_AMOY else "base"


def wallet_chain_for(chain: str) -> str:
    """Local `wallets.blockchain` value for a chain name or Circle tag."""
    name = (chain or "").lower()
    if "polygon" in name or "matic" in name:
        return WalletChain.POLYGON
    if "base" in name:
        return WalletChain.BASE
    return name.upper()


def ledger_network_for(blockchain: Optional[str]) -> tuple[int, str]:
    """(network_id, network_name) stamped on reconciled ledger rows."""
    if blockchain and "MATIC" in blockchain:
        return POLYGON_AMOY_ID, NETWORK_NAMES[POLYGON_AMOY_ID]
    return BASE_LEDGER_NETWORK_ID, NETWORK_NAMES[BASE_LEDGER_NETWORK_ID]
