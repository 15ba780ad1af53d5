"""Tests for NEAR signer implementations."""

import asyncio
import json

import base58
import httpx
import pytest
from solders.keypair import Keypair
from solders.signature import Signature as SoldersSignature

from veridoc.errors import NoAccessKeyError, SigningError
from veridoc.mechanisms.near.signer import (
    HttpRawHashSigner,
    KeyPairSigner,
    RemoteHashSigner,
    UnsupportedOperation,
    decode_hex_signature,
)
from veridoc.mechanisms.near.transactions import PublicKey, Transaction, create_transfer_action

KEY_BYTES = bytes(range(32))
SIGNATURE = bytes([0xAB] * 64)


class FakeProvider:
    def __init__(self, keys):
        self.keys = keys

    async def view_access_key_list(self, account_id):
        return self.keys


class FakeRawHashSigner:
    def __init__(self, signature="0x" + SIGNATURE.hex(), error=None):
        self.calls = []
        self._signature = signature
        self._error = error

    async def __call__(self, *, address, chain_type, hash):
        self.calls.append({"address": address, "chain_type": chain_type, "hash": hash})
        if self._error is not None:
            raise self._error
        return self._signature


def _tx(nonce=1):
    return Transaction(
        signer_id="escrow.near",
        public_key=PublicKey(KEY_BYTES),
        nonce=nonce,
        receiver_id="doc.near",
        block_hash=b"\x01" * 32,
        actions=(create_transfer_action(1),),
    )


def _remote(sign_raw_hash=None, keys=None):
    if keys is None:
        keys = [{"public_key": str(PublicKey(KEY_BYTES)), "access_key": {}}]
    return RemoteHashSigner(sign_raw_hash or FakeRawHashSigner(), "escrow.near", FakeProvider(keys))


class TestRemoteHashSigner:
    def test_public_key_is_first_access_key(self):
        signer = _remote()
        assert asyncio.run(signer.get_public_key()) == PublicKey(KEY_BYTES)

    def test_no_access_keys(self):
        signer = _remote(keys=[])
        with pytest.raises(NoAccessKeyError, match="escrow.near"):
            asyncio.run(signer.get_public_key())

    def test_signs_transaction_digest(self):
        raw = FakeRawHashSigner()
        signer = _remote(raw)
        tx = _tx()

        digest, signed = asyncio.run(signer.sign_transaction(tx))

        assert digest == tx.digest()
        assert raw.calls == [
            {"address": "escrow.near", "chain_type": "near", "hash": "0x" + tx.digest().hex()}
        ]
        assert signed.signature.data == SIGNATURE
        assert signed.transaction is tx

    def test_same_transaction_same_hash(self):
        raw = FakeRawHashSigner()
        signer = _remote(raw)
        asyncio.run(signer.sign_transaction(_tx()))
        asyncio.run(signer.sign_transaction(_tx()))
        asyncio.run(signer.sign_transaction(_tx(nonce=2)))
        hashes = [c["hash"] for c in raw.calls]
        assert hashes[0] == hashes[1]
        assert hashes[0] != hashes[2]

    def test_accepts_signature_without_prefix(self):
        signer = _remote(FakeRawHashSigner(signature=SIGNATURE.hex()))
        _, signed = asyncio.run(signer.sign_transaction(_tx()))
        assert signed.signature.data == SIGNATURE

    def test_wraps_signer_failure(self):
        signer = _remote(FakeRawHashSigner(error=RuntimeError("enclave down")))
        with pytest.raises(SigningError, match="enclave down"):
            asyncio.run(signer.sign_transaction(_tx()))

    def test_rejects_short_signature(self):
        signer = _remote(FakeRawHashSigner(signature="0x" + "ab" * 63))
        with pytest.raises(SigningError, match="64 bytes"):
            asyncio.run(signer.sign_transaction(_tx()))

    def test_delegate_actions_unsupported(self):
        result = asyncio.run(_remote().sign_delegate_action(object()))
        assert isinstance(result, UnsupportedOperation)
        assert not result
        assert result.operation == "sign_delegate_action"

    def test_offchain_messages_unsupported(self):
        result = asyncio.run(
            _remote().sign_offchain_message("hi", "escrow.near", "app.near", b"\x00" * 32)
        )
        assert isinstance(result, UnsupportedOperation)
        assert result.operation == "sign_offchain_message"


class TestKeyPairSigner:
    def test_signature_verifies_against_public_key(self):
        keypair = Keypair()
        signer = KeyPairSigner(keypair)
        tx = _tx()

        digest, signed = asyncio.run(signer.sign_transaction(tx))

        sig = SoldersSignature.from_bytes(signed.signature.data)
        assert sig.verify(keypair.pubkey(), digest)

    def test_public_key(self):
        keypair = Keypair()
        signer = KeyPairSigner(keypair)
        assert asyncio.run(signer.get_public_key()).data == bytes(keypair.pubkey())

    def test_from_secret_key_64_bytes(self):
        keypair = Keypair()
        secret = "ed25519:" + base58.b58encode(bytes(keypair)).decode()
        signer = KeyPairSigner.from_secret_key(secret)
        assert signer.keypair.pubkey() == keypair.pubkey()

    def test_from_secret_key_seed(self):
        seed = bytes([5] * 32)
        signer = KeyPairSigner.from_secret_key(base58.b58encode(seed).decode())
        assert signer.keypair.pubkey() == Keypair.from_seed(seed).pubkey()

    def test_from_secret_key_rejects_bad_length(self):
        with pytest.raises(ValueError, match="32 or 64 bytes"):
            KeyPairSigner.from_secret_key("ed25519:" + base58.b58encode(b"\x01" * 10).decode())


class TestHttpRawHashSigner:
    def _client(self, handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    def test_posts_hash_and_returns_signature(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"signature": "0x" + SIGNATURE.hex()})

        async def run():
            async with self._client(handler) as client:
                signer = HttpRawHashSigner("https://signer.test/sign", api_key="k", client=client)
                return await signer(address="escrow.near", chain_type="near", hash="0xdead")

        assert asyncio.run(run()) == "0x" + SIGNATURE.hex()
        assert seen["body"] == {"address": "escrow.near", "chainType": "near", "hash": "0xdead"}
        assert seen["auth"] == "Bearer k"

    def test_error_status(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        async def run():
            async with self._client(handler) as client:
                signer = HttpRawHashSigner("https://signer.test/sign", client=client)
                await signer(address="escrow.near", chain_type="near", hash="0x00")

        with pytest.raises(SigningError, match="500"):
            asyncio.run(run())

    def test_missing_signature(self):
        def handler(request):
            return httpx.Response(200, json={})

        async def run():
            async with self._client(handler) as client:
                signer = HttpRawHashSigner("https://signer.test/sign", client=client)
                await signer(address="escrow.near", chain_type="near", hash="0x00")

        with pytest.raises(SigningError, match="no signature"):
            asyncio.run(run())


def test_decode_hex_signature_rejects_non_hex():
    with pytest.raises(SigningError, match="not valid hex"):
        decode_hex_signature("0xzz")
