import uuid
from typing import Optional
import httpx


class CircleAPIError(Exception):
    """Non-200 answer from the Circle API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Circle API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def _payload(data: dict) -> dict:
    inner = data.get("data")
    return inner if isinstance(inner, dict) else {}


class CircleClient:
    """Thin async wrapper over the Circle Web3 Services endpoints used here.

    One instance is created per process (see the app lifespan) and shared
    through dependencies; call `close()` on shutdown.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.circle.com",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def _get(self, path: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> dict:
        resp = await self.client.get(
            f"{self.base_url}{path}",
            params=params,
            headers={**self._headers(), **(headers or {})},
        )
        if resp.status_code != 200:
            raise CircleAPIError(resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError:
            raise CircleAPIError(resp.status_code, f"Response is not JSON: {resp.text[:200]}")
        if not isinstance(data, dict):
            raise CircleAPIError(resp.status_code, "Unexpected response shape")
        return data

    async def get_notification_public_key(self, key_id: str) -> str:
        """Raw (base64 DER) public key Circle signs webhook deliveries with."""
        if not self.api_key:
            raise CircleAPIError(401, "Circle API key is not set")
        data = await self._get(f"/v2/notifications/publicKey/{key_id}")
        public_key = _payload(data).get("publicKey")
        if not isinstance(public_key, str) or not public_key.strip():
            raise CircleAPIError(200, f"No public key in response for {key_id}")
        return public_key

    async def get_wallet_balances(self, blockchain: str, address: str, token_name: Optional[str] = None) -> list[dict]:
        params = {"name": token_name} if token_name else None
        data = await self._get(
            f"/v1/w3s/buidl/wallets/{blockchain}/{address}/balances",
            params=params,
            headers={"X-Request-Id": str(uuid.uuid4())},
        )
        return _payload(data).get("tokenBalances") or []

    async def list_transfers(self, params: dict) -> dict:
        data = await self._get("/v1/w3s/buidl/transfers", params=params)
        return _payload(data)

    async def get_transfer(self, transfer_id: str) -> Optional[dict]:
        try:
            data = await self._get(f"/v1/w3s/buidl/transfers/{transfer_id}")
        except CircleAPIError as exc:
            if exc.status_code == 404:
                return None
            raise
        return _payload(data).get("transfer")

    async def find_transfers_by_hash(self, tx_hash: str) -> list[dict]:
        data = await self._get("/v1/w3s/buidl/transfers", params={"txHash": tx_hash})
        return _payload(data).get("transfers") or []

    async def get_transaction_receipt(self, blockchain: str, tx_hash: str) -> Optional[dict]:
        try:
            data = await self._get(f"/v1/w3s/buidl/transactions/{blockchain}/{tx_hash}/receipt")
        except CircleAPIError as exc:
            if exc.status_code == 404:
                return None
            raise
        return _payload(data) or None

    async def close(self):
        await self.client.aclose()
