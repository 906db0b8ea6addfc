"""Authenticity check for Circle webhook deliveries.

Circle signs the raw request body with the key identified by the
`x-circle-key-id` header. Verification must run over the bytes exactly as
received; re-serializing parsed JSON changes key order and whitespace and
breaks otherwise valid signatures.
"""
import base64
import binascii
import logging
from typing import Optional
import httpx
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from wallet_ledger.services.circle_client import CircleAPIError, CircleClient

logger = logging.getLogger(__name__)

PUBLIC_KEY_CACHE_PREFIX = "circle:notification_key:"


def raw_key_to_pem(raw_key: str) -> str:
    """Wrap a bare base64 public key in PEM armour with 64-character lines."""
    if not isinstance(raw_key, str) or not raw_key.strip():
        raise ValueError("Circle public key is empty")
    body = "".join(raw_key.split())
    lines = [body[i:i + 64] for i in range(0, len(body), 64)]
    return "-----BEGIN PUBLIC KEY-----\n" + "\n".join(lines) + "\n-----END PUBLIC KEY-----"


class SignatureVerifier:
    def __init__(self, circle: CircleClient, redis=None, cache_ttl: int = 86400):
        self.circle = circle
        self.redis = redis
        self.cache_ttl = cache_ttl

    async def get_public_key(self, key_id: str) -> str:
        """PEM public key for key_id, through the Redis cache when configured."""
        cache_key = f"{PUBLIC_KEY_CACHE_PREFIX}{key_id}"
        if self.redis is not None:
            try:
                cached = await self.redis.get(cache_key)
                if cached:
                    return cached
            except Exception as exc:
                logger.warning("Public key cache read failed for %s: %s", key_id, exc)

        pem = raw_key_to_pem(await self.circle.get_notification_public_key(key_id))

        if self.redis is not None:
            try:
                await self.redis.set(cache_key, pem, ex=self.cache_ttl)
            except Exception as exc:
                logger.warning("Public key cache write failed for %s: %s", key_id, exc)
        return pem

    async def verify(self, raw_body: bytes, signature: str, key_id: str) -> bool:
        """True only if signature is a valid SHA-256 signature of raw_body.

        Every failure (key fetch, bad base64, unsupported key, mismatch)
        yields False.
        """
        if not signature or not key_id:
            return False

        try:
            pem = await self.get_public_key(key_id)
        except (CircleAPIError, httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            logger.error("Could not fetch Circle public key %s: %s", key_id, exc)
            return False

        try:
            signature_bytes = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Webhook signature is not valid base64")
            return False

        try:
            public_key = serialization.load_pem_public_key(pem.encode())
        except (ValueError, UnsupportedAlgorithm) as exc:
            logger.error("Circle public key %s could not be loaded: %s", key_id, exc)
            return False

        try:
            if isinstance(public_key, ec.EllipticCurvePublicKey):
                public_key.verify(signature_bytes, raw_body, ec.ECDSA(hashes.SHA256()))
            elif isinstance(public_key, rsa.RSAPublicKey):
                public_key.verify(signature_bytes, raw_body, padding.PKCS1v15(), hashes.SHA256())
            else:
                logger.error("Unsupported Circle public key type: %s", type(public_key).__name__)
                return False
        except InvalidSignature:
            return False
        return True
