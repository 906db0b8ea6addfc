from wallet_ledger.models.profile import Profile
from wallet_ledger.models.wallet import Wallet, WalletChain
from wallet_ledger.models.transaction import Transaction, TransactionType
