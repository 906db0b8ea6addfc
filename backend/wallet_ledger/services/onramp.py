import logging
from typing import Optional
import stripe

logger = logging.getLogger(__name__)

ONRAMP_SESSIONS_PATH = "/v1/crypto/onramp_sessions"
SUPPORTED_NETWORKS = ["base", "polygon"]


class StripeOnrampClient:
    """Creates Stripe crypto on-ramp sessions that deliver USDC to a wallet.

    The SDK has no typed resource for on-ramp sessions, so the request goes
    through the client's raw request API.
    """

    def __init__(self, api_key: str, default_amount: str = "10", client: Optional[stripe.StripeClient] = None):
        self.client = client or stripe.StripeClient(api_key)
        self.default_amount = default_amount

    async def create_session(self, wallet_address: str, network: Optional[str] = None) -> str:
        """Client secret of a new on-ramp session for wallet_address."""
        transaction_details = {
            "wallet_address": wallet_address,
            "destination_currency": "usdc",
            "destination_exchange_amount": self.default_amount,
            "supported_destination_networks": SUPPORTED_NETWORKS,
        }
        if network:
            transaction_details["destination_network"] = network
        response = await self.client.raw_request_async(
            "post",
            ONRAMP_SESSIONS_PATH,
            transaction_details=transaction_details,
        )
        return response.data["client_secret"]
