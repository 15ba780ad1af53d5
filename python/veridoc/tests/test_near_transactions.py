"""Tests for NEAR Borsh encoding and action builders."""

import hashlib
import struct

import base58
import pytest

from veridoc.mechanisms.near.constants import (
    FT_TRANSFER_DEPOSIT,
    FT_TRANSFER_GAS,
    STORAGE_DEPOSIT_ONE_ACCOUNT,
)
from veridoc.mechanisms.near.transactions import (
    PublicKey,
    Signature,
    SignedTransaction,
    Transaction,
    create_ft_transfer_action,
    create_storage_deposit_action,
    create_transfer_action,
    decode_block_hash,
    tx_hash_from_digest,
)

KEY_BYTES = bytes(range(32))
BLOCK_HASH = bytes([7] * 32)


def _string(s: str) -> bytes:
    data = s.encode()
    return struct.pack("<I", len(data)) + data


def _u128(n: int) -> bytes:
    return n.to_bytes(16, "little")


def _transfer_tx(deposit: int = 1) -> Transaction:
    return Transaction(
        signer_id="escrow.near",
        public_key=PublicKey(KEY_BYTES),
        nonce=42,
        receiver_id="doc.near",
        block_hash=BLOCK_HASH,
        actions=(create_transfer_action(deposit),),
    )


class TestPublicKey:
    def test_string_round_trip(self):
        key = PublicKey(KEY_BYTES)
        text = str(key)
        assert text.startswith("ed25519:")
        assert PublicKey.from_string(text) == key

    def test_prefix_is_optional(self):
        encoded = base58.b58encode(KEY_BYTES).decode()
        assert PublicKey.from_string(encoded).data == KEY_BYTES

    def test_rejects_other_key_types(self):
        with pytest.raises(ValueError, match="prefix"):
            PublicKey.from_string("secp256k1:abc")

    def test_rejects_wrong_length(self):
        with pytest.raises(ValueError, match="32 bytes"):
            PublicKey(b"\x01" * 31)


class TestTransactionEncoding:
    def test_transfer_layout(self):
        expected = (
            _string("escrow.near")
            + b"\x00"
            + KEY_BYTES
            + struct.pack("<Q", 42)
            + _string("doc.near")
            + BLOCK_HASH
            + struct.pack("<I", 1)
            + b"\x03"
            + _u128(5)
        )
        assert _transfer_tx(5).encode() == expected

    def test_function_call_layout(self):
        action = create_ft_transfer_action(8_500_000, "doc.near")
        tx = Transaction(
            signer_id="escrow.near",
            public_key=PublicKey(KEY_BYTES),
            nonce=1,
            receiver_id="usdt.tether-token.near",
            block_hash=BLOCK_HASH,
            actions=(action,),
        )
        args = b'{"receiver_id":"doc.near","amount":"8500000","memo":null}'
        tail = (
            struct.pack("<I", 1)
            + b"\x02"
            + _string("ft_transfer")
            + struct.pack("<I", len(args))
            + args
            + struct.pack("<Q", FT_TRANSFER_GAS)
            + _u128(FT_TRANSFER_DEPOSIT)
        )
        assert tx.encode().endswith(tail)

    def test_digest_is_sha256_of_encoding(self):
        tx = _transfer_tx()
        assert tx.digest() == hashlib.sha256(tx.encode()).digest()

    def test_digest_is_deterministic(self):
        assert _transfer_tx().digest() == _transfer_tx().digest()
        assert _transfer_tx(1).digest() != _transfer_tx(2).digest()

    def test_rejects_short_block_hash(self):
        tx = Transaction(
            signer_id="escrow.near",
            public_key=PublicKey(KEY_BYTES),
            nonce=1,
            receiver_id="doc.near",
            block_hash=b"\x00" * 31,
        )
        with pytest.raises(ValueError, match="32 bytes"):
            tx.encode()

    def test_signed_transaction_appends_signature(self):
        tx = _transfer_tx()
        sig = Signature(b"\x09" * 64)
        signed = SignedTransaction(transaction=tx, signature=sig)
        assert signed.encode() == tx.encode() + b"\x00" + b"\x09" * 64
        assert signed.tx_hash == tx_hash_from_digest(tx.digest())


class TestActions:
    def test_ft_transfer(self):
        action = create_ft_transfer_action("1500000", "fees.near", memo="c1")
        assert action.method_name == "ft_transfer"
        assert action.json_args() == {"receiver_id": "fees.near", "amount": "1500000", "memo": "c1"}
        assert action.gas == 50 * 10**12
        assert action.deposit == 1

    def test_storage_deposit(self):
        action = create_storage_deposit_action("doc.near")
        assert action.method_name == "storage_deposit"
        assert action.json_args() == {"account_id": "doc.near"}
        assert action.deposit == STORAGE_DEPOSIT_ONE_ACCOUNT == 1_250_000_000_000_000_000_000


def test_decode_block_hash():
    encoded = base58.b58encode(BLOCK_HASH).decode()
    assert decode_block_hash(encoded) == BLOCK_HASH
    with pytest.raises(ValueError):
        decode_block_hash(base58.b58encode(b"\x01" * 16).decode())
