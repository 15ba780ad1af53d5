"""NEAR transaction types, canonical Borsh encoding and action builders.

Only ED25519 keys are modelled. Transactions are built from FunctionCall,
Transfer and NEP-366 Delegate actions; the remaining action variants are
decoded so a signed delegate can be inspected before it is relayed. Enum
ordinals follow nearcore.
"""

from __future__ import annotations

import base64
import hashlib
import io
import json
from dataclasses import dataclass, field
from typing import Any, Union

import base58
from borsh_construct import U8, U32, U64, U128, CStruct, Enum, Option, String, Vec
from construct import ConstructError

from .constants import (
    ED25519_PUBLIC_KEY_LENGTH,
    ED25519_SIGNATURE_LENGTH,
    FT_TRANSFER_DEPOSIT,
    FT_TRANSFER_GAS,
    KEY_TYPE_ED25519,
    KEY_TYPE_PREFIX,
    STORAGE_DEPOSIT_GAS,
    STORAGE_DEPOSIT_ONE_ACCOUNT,
)

# --- Borsh schema ---

PublicKeySchema = CStruct(
    "key_type" / U8,
    "data" / U8[ED25519_PUBLIC_KEY_LENGTH],
)

SignatureSchema = CStruct(
    "key_type" / U8,
    "data" / U8[ED25519_SIGNATURE_LENGTH],
)

AccessKeySchema = CStruct(
    "nonce" / U64,
    "permission"
    / Enum(
        "FunctionCall"
        / CStruct(
            "allowance" / Option(U128),
            "receiver_id" / String,
            "method_names" / Vec(String),
        ),
        "FullAccess",
        enum_name="AccessKeyPermission",
    ),
)

_NON_DELEGATE_ACTIONS = (
    "CreateAccount",
    "DeployContract" / CStruct("code" / Vec(U8)),
    "FunctionCall"
    / CStruct(
        "method_name" / String,
        "args" / Vec(U8),
        "gas" / U64,
        "deposit" / U128,
    ),
    "Transfer" / CStruct("deposit" / U128),
    "Stake" / CStruct("stake" / U128, "public_key" / PublicKeySchema),
    "AddKey" / CStruct("public_key" / PublicKeySchema, "access_key" / AccessKeySchema),
    "DeleteKey" / CStruct("public_key" / PublicKeySchema),
    "DeleteAccount" / CStruct("beneficiary_id" / String),
)

# Actions a delegate may carry; a delegate cannot nest another delegate
NonDelegateActionSchema = Enum(*_NON_DELEGATE_ACTIONS, enum_name="NonDelegateAction")

DelegateActionSchema = CStruct(
    "sender_id" / String,
    "receiver_id" / String,
    "actions" / Vec(NonDelegateActionSchema),
    "nonce" / U64,
    "max_block_height" / U64,
    "public_key" / PublicKeySchema,
)

SignedDelegateSchema = CStruct(
    "delegate_action" / DelegateActionSchema,
    "signature" / SignatureSchema,
)

ActionSchema = Enum(
    *_NON_DELEGATE_ACTIONS,
    "Delegate" / SignedDelegateSchema,
    enum_name="Action",
)

DELEGATE_ACTION_INDEX = len(_NON_DELEGATE_ACTIONS)

# Decoding schemas. Encoding goes action by action (see ``encode_actions``)
# so a relayed delegate keeps the exact bytes its sender signed.
TransactionSchema = CStruct(
    "signer_id" / String,
    "public_key" / PublicKeySchema,
    "nonce" / U64,
    "receiver_id" / String,
    "block_hash" / U8[32],
    "actions" / Vec(ActionSchema),
)

SignedTransactionSchema = CStruct(
    "transaction" / TransactionSchema,
    "signature" / SignatureSchema,
)

_TransactionHeaderSchema = CStruct(
    "signer_id" / String,
    "public_key" / PublicKeySchema,
    "nonce" / U64,
    "receiver_id" / String,
    "block_hash" / U8[32],
)


# --- Keys and signatures ---


@dataclass(frozen=True)
class PublicKey:
    """A NEAR public key (ED25519 only)."""

    data: bytes
    key_type: int = KEY_TYPE_ED25519

    def __post_init__(self) -> None:
        if self.key_type != KEY_TYPE_ED25519:
            raise ValueError(f"Unsupported key type: {self.key_type}")
        if len(self.data) != ED25519_PUBLIC_KEY_LENGTH:
            raise ValueError(
                f"ED25519 public key must be {ED25519_PUBLIC_KEY_LENGTH} bytes, got {len(self.data)}"
            )

    @classmethod
    def from_string(cls, value: str) -> "PublicKey":
        """Parse ``ed25519:<base58>`` (the prefix is optional)."""
        prefix, sep, encoded = value.partition(":")
        if not sep:
            prefix, encoded = "ed25519", value
        if prefix != KEY_TYPE_PREFIX[KEY_TYPE_ED25519]:
            raise ValueError(f"Unsupported key type prefix: {prefix}")
        return cls(data=base58.b58decode(encoded))

    def __str__(self) -> str:
        return f"{KEY_TYPE_PREFIX[self.key_type]}:{base58.b58encode(self.data).decode()}"

    def to_borsh(self) -> dict[str, Any]:
        return {"key_type": self.key_type, "data": list(self.data)}


@dataclass(frozen=True)
class Signature:
    data: bytes
    key_type: int = KEY_TYPE_ED25519

    def __post_init__(self) -> None:
        if len(self.data) != ED25519_SIGNATURE_LENGTH:
            raise ValueError(
                f"ED25519 signature must be {ED25519_SIGNATURE_LENGTH} bytes, got {len(self.data)}"
            )

    def to_borsh(self) -> dict[str, Any]:
        return {"key_type": self.key_type, "data": list(self.data)}


# --- Actions ---


@dataclass(frozen=True)
class FunctionCallAction:
    method_name: str
    args: bytes
    gas: int
    deposit: int

    def encode(self) -> bytes:
        return ActionSchema.build(
            ActionSchema.enum.FunctionCall(
                method_name=self.method_name,
                args=list(self.args),
                gas=self.gas,
                deposit=self.deposit,
            )
        )

    def json_args(self) -> Any:
        return json.loads(self.args.decode("utf-8"))


@dataclass(frozen=True)
class TransferAction:
    deposit: int

    def encode(self) -> bytes:
        return ActionSchema.build(ActionSchema.enum.Transfer(deposit=self.deposit))


@dataclass(frozen=True)
class SignedDelegateAction:
    """A NEP-366 signed delegate action, relayed byte for byte.

    ``actions`` holds the decoded inner actions; function calls are exposed
    as ``FunctionCallAction`` through ``function_calls()``.
    """

    sender_id: str
    receiver_id: str
    actions: tuple[Any, ...]
    nonce: int
    max_block_height: int
    public_key: PublicKey
    raw: bytes = field(repr=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SignedDelegateAction":
        """Decode a Borsh ``SignedDelegate``.

        Raises:
            ValueError: If the bytes are not exactly one signed delegate.
        """
        stream = io.BytesIO(data)
        try:
            parsed = SignedDelegateSchema.parse_stream(stream)
        except (ConstructError, ValueError, IndexError) as e:
            raise ValueError(f"Malformed signed delegate: {e}") from e
        if stream.tell() != len(data):
            raise ValueError("Malformed signed delegate: trailing bytes")

        delegate = parsed.delegate_action
        try:
            public_key = PublicKey(bytes(delegate.public_key.data), delegate.public_key.key_type)
        except ValueError as e:
            raise ValueError(f"Malformed signed delegate: {e}") from e
        return cls(
            sender_id=delegate.sender_id,
            receiver_id=delegate.receiver_id,
            actions=tuple(delegate.actions),
            nonce=delegate.nonce,
            max_block_height=delegate.max_block_height,
            public_key=public_key,
            raw=bytes(data),
        )

    @classmethod
    def from_base64(cls, value: str) -> "SignedDelegateAction":
        try:
            data = base64.b64decode(value, validate=True)
        except ValueError as e:
            raise ValueError(f"Signed delegate is not valid base64: {e}") from e
        return cls.from_bytes(data)

    def function_calls(self) -> list[FunctionCallAction]:
        return [
            FunctionCallAction(
                method_name=a.method_name,
                args=bytes(a.args),
                gas=a.gas,
                deposit=a.deposit,
            )
            for a in self.actions
            if isinstance(a, NonDelegateActionSchema.enum.FunctionCall)
        ]

    def encode(self) -> bytes:
        return bytes([DELEGATE_ACTION_INDEX]) + self.raw


Action = Union[FunctionCallAction, TransferAction, SignedDelegateAction]


def create_transfer_action(amount_yocto: int) -> TransferAction:
    """Native NEAR transfer."""
    return TransferAction(deposit=int(amount_yocto))


def create_function_call_action(
    method_name: str,
    args: dict[str, Any] | bytes,
    gas: int,
    deposit: int,
) -> FunctionCallAction:
    """Contract call; dict args are JSON-encoded the way NEAR contracts expect."""
    if isinstance(args, dict):
        args = json.dumps(args, separators=(",", ":")).encode("utf-8")
    return FunctionCallAction(method_name=method_name, args=args, gas=int(gas), deposit=int(deposit))


def create_ft_transfer_action(
    amount_raw: int | str,
    receiver_id: str,
    memo: str | None = None,
) -> FunctionCallAction:
    """NEP-141 ``ft_transfer`` of ``amount_raw`` token units to ``receiver_id``."""
    return create_function_call_action(
        "ft_transfer",
        {"receiver_id": receiver_id, "amount": str(amount_raw), "memo": memo},
        FT_TRANSFER_GAS,
        FT_TRANSFER_DEPOSIT,
    )


def create_storage_deposit_action(
    account_id: str,
    deposit_yocto: int = STORAGE_DEPOSIT_ONE_ACCOUNT,
) -> FunctionCallAction:
    """NEP-145 ``storage_deposit`` registering ``account_id``; the signer pays."""
    return create_function_call_action(
        "storage_deposit",
        {"account_id": account_id},
        STORAGE_DEPOSIT_GAS,
        deposit_yocto,
    )


# --- Transactions ---


def encode_actions(actions: tuple[Action, ...] | list[Action]) -> bytes:
    """Borsh ``Vec<Action>``: u32 length, then each action's own encoding."""
    return U32.build(len(actions)) + b"".join(a.encode() for a in actions)


@dataclass(frozen=True)
class Transaction:
    signer_id: str
    public_key: PublicKey
    nonce: int
    receiver_id: str
    block_hash: bytes
    actions: tuple[Action, ...] = field(default_factory=tuple)

    def encode(self) -> bytes:
        """Canonical Borsh encoding."""
        return _TransactionHeaderSchema.build(self._header()) + encode_actions(self.actions)

    def digest(self) -> bytes:
        """SHA-256 of the canonical encoding; this is what gets signed."""
        return hashlib.sha256(self.encode()).digest()

    def _header(self) -> dict[str, Any]:
        if len(self.block_hash) != 32:
            raise ValueError(f"block_hash must be 32 bytes, got {len(self.block_hash)}")
        return {
            "signer_id": self.signer_id,
            "public_key": self.public_key.to_borsh(),
            "nonce": self.nonce,
            "receiver_id": self.receiver_id,
            "block_hash": list(self.block_hash),
        }


@dataclass(frozen=True)
class SignedTransaction:
    transaction: Transaction
    signature: Signature

    def encode(self) -> bytes:
        return self.transaction.encode() + SignatureSchema.build(self.signature.to_borsh())

    @property
    def tx_hash(self) -> str:
        return tx_hash_from_digest(self.transaction.digest())


def tx_hash_from_digest(digest: bytes) -> str:
    """Base58 transaction hash as shown by explorers and RPC outcomes."""
    return base58.b58encode(digest).decode()


def decode_block_hash(value: str) -> bytes:
    data = base58.b58decode(value)
    if len(data) != 32:
        raise ValueError(f"block hash must decode to 32 bytes, got {len(data)}")
    return data
