"""Signing capability for NEAR settlement mechanisms.

``NearSigner`` is the capability a ledger account needs. ``RemoteHashSigner``
fulfils it by delegating the cryptographic operation to an out-of-process
raw-hash signer; it never holds key material. ``KeyPairSigner`` fulfils it
with a locally configured ED25519 key.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import base58
import httpx
from solders.keypair import Keypair

from ...errors import NoAccessKeyError, SigningError
from .constants import CHAIN_TYPE_NEAR, ED25519_SIGNATURE_LENGTH, KEY_TYPE_ED25519
from .provider import NearRpcProvider
from .transactions import PublicKey, Signature, SignedTransaction, Transaction

logger = logging.getLogger(__name__)

# (address, chain_type, "0x<hash hex>") -> "0x<signature hex>"
SignRawHashFn = Callable[..., Awaitable[str]]


@dataclass(frozen=True)
class UnsupportedOperation:
    """Answer from a signer for an operation it deliberately does not offer."""

    operation: str
    reason: str

    def __bool__(self) -> bool:
        return False


class NearSigner(Protocol):
    """Protocol for account-side NEAR signing."""

    async def get_public_key(self) -> PublicKey:
        """The public key transactions are signed for."""
        ...

    async def sign_transaction(self, transaction: Transaction) -> tuple[bytes, SignedTransaction]:
        """Sign a transaction.

        Returns:
            (digest, signed transaction). The digest is the transaction hash
            before base58 encoding.
        """
        ...

    async def sign_delegate_action(self, delegate_action: Any) -> Any:
        """Sign a NEP-366 delegate action."""
        ...

    async def sign_offchain_message(
        self,
        message: str,
        account_id: str,
        recipient: str,
        nonce: bytes,
        callback_url: str | None = None,
    ) -> Any:
        """Sign a NEP-413 off-chain message."""
        ...


def decode_hex_signature(signature: str) -> bytes:
    """Decode a hex signature (optional 0x) to 64 raw bytes."""
    if not isinstance(signature, str):
        raise SigningError(f"Signature must be a hex string, got {type(signature).__name__}")
    h = signature[2:] if signature.startswith(("0x", "0X")) else signature
    try:
        data = bytes.fromhex(h)
    except ValueError as e:
        raise SigningError(f"Signature is not valid hex: {e}") from e
    if len(data) != ED25519_SIGNATURE_LENGTH:
        raise SigningError(
            f"Signature must be {ED25519_SIGNATURE_LENGTH} bytes, got {len(data)}"
        )
    return data


class RemoteHashSigner:
    """Signs NEAR transactions through an external raw-hash signing service.

    Only plain transaction signing is offered; delegate actions and
    off-chain messages answer ``UnsupportedOperation``.
    """

    def __init__(
        self,
        sign_raw_hash: SignRawHashFn,
        account_id: str,
        provider: NearRpcProvider,
    ):
        self._sign_raw_hash = sign_raw_hash
        self._account_id = account_id
        self._provider = provider

    @property
    def account_id(self) -> str:
        return self._account_id

    async def get_public_key(self) -> PublicKey:
        keys = await self._provider.view_access_key_list(self._account_id)
        if not keys:
            raise NoAccessKeyError(
                f"No access keys found for {self._account_id}",
                account_id=self._account_id,
            )
        first = keys[0].get("public_key")
        if isinstance(first, dict):
            first = first.get("data", "")
        return PublicKey.from_string(first or "")

    async def sign_transaction(self, transaction: Transaction) -> tuple[bytes, SignedTransaction]:
        digest = transaction.digest()
        try:
            sig_hex = await self._sign_raw_hash(
                address=self._account_id,
                chain_type=CHAIN_TYPE_NEAR,
                hash="0x" + digest.hex(),
            )
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Remote signer failed: {e}", account_id=self._account_id) from e

        signature = Signature(data=decode_hex_signature(sig_hex), key_type=KEY_TYPE_ED25519)
        return digest, SignedTransaction(transaction=transaction, signature=signature)

    async def sign_delegate_action(self, delegate_action: Any) -> UnsupportedOperation:
        return UnsupportedOperation(
            operation="sign_delegate_action",
            reason="Delegate action signing is not offered by the remote hash signer",
        )

    async def sign_offchain_message(
        self,
        message: str,
        account_id: str,
        recipient: str,
        nonce: bytes,
        callback_url: str | None = None,
    ) -> UnsupportedOperation:
        return UnsupportedOperation(
            operation="sign_offchain_message",
            reason="NEP-413 message signing is not offered by the remote hash signer",
        )


class KeyPairSigner:
    """NEAR signer backed by a locally configured ED25519 key."""

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_secret_key(cls, secret_key: str) -> "KeyPairSigner":
        """Create from ``ed25519:<base58>`` (64-byte keypair or 32-byte seed)."""
        encoded = secret_key.strip()
        if encoded.startswith("ed25519:"):
            encoded = encoded[len("ed25519:"):]
        try:
            raw = base58.b58decode(encoded)
        except ValueError as e:
            raise ValueError("Secret key is not valid base58") from e

        if len(raw) == 64:
            return cls(Keypair.from_bytes(raw))
        if len(raw) == 32:
            return cls(Keypair.from_seed(raw))
        raise ValueError(f"Secret key must decode to 32 or 64 bytes, got {len(raw)}")

    @property
    def keypair(self) -> Keypair:
        return self._keypair

    async def get_public_key(self) -> PublicKey:
        return PublicKey(data=bytes(self._keypair.pubkey()))

    async def sign_transaction(self, transaction: Transaction) -> tuple[bytes, SignedTransaction]:
        digest = transaction.digest()
        sig = bytes(self._keypair.sign_message(digest))
        return digest, SignedTransaction(transaction=transaction, signature=Signature(data=sig))

    async def sign_delegate_action(self, delegate_action: Any) -> UnsupportedOperation:
        return UnsupportedOperation(
            operation="sign_delegate_action",
            reason="Delegate actions are not relayed by this service",
        )

    async def sign_offchain_message(
        self,
        message: str,
        account_id: str,
        recipient: str,
        nonce: bytes,
        callback_url: str | None = None,
    ) -> UnsupportedOperation:
        return UnsupportedOperation(
            operation="sign_offchain_message",
            reason="NEP-413 message signing is not offered by this service",
        )


class HttpRawHashSigner:
    """``sign_raw_hash`` callable backed by an HTTP signing service.

    POSTs ``{address, chainType, hash}`` and reads ``signature`` from the
    JSON response.
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self._url = url
        self._api_key = api_key
        self._client = client
        self._timeout = timeout

    async def __call__(self, *, address: str, chain_type: str, hash: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        body = {"address": address, "chainType": chain_type, "hash": hash}

        try:
            if self._client is not None:
                resp = await self._client.post(self._url, json=body, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise SigningError(f"Remote signer unreachable: {e}", address=address) from e

        if resp.status_code >= 400:
            raise SigningError(
                f"Remote signer returned {resp.status_code}: {resp.text[:200]}",
                address=address,
            )
        try:
            signature = resp.json().get("signature")
        except (ValueError, AttributeError) as e:
            raise SigningError("Remote signer returned a malformed response", address=address) from e
        if not signature:
            raise SigningError("Remote signer response has no signature", address=address)
        return signature
