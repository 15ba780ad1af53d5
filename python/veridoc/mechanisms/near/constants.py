"""Constants for NEAR settlement mechanisms."""

# CAIP-2 style network identifiers
NEAR_MAINNET = "near:mainnet"
NEAR_TESTNET = "near:testnet"

DEFAULT_MAINNET_RPC_URL = "https://rpc.mainnet.near.org"
DEFAULT_TESTNET_RPC_URL = "https://rpc.testnet.near.org"

NETWORK_TO_RPC_URL = {
    NEAR_MAINNET: DEFAULT_MAINNET_RPC_URL,
    NEAR_TESTNET: DEFAULT_TESTNET_RPC_URL,
}

# Tag sent to the remote raw-hash signer
CHAIN_TYPE_NEAR = "near"

# Borsh key type tags
KEY_TYPE_ED25519 = 0
KEY_TYPE_PREFIX = {KEY_TYPE_ED25519: "ed25519"}

ED25519_PUBLIC_KEY_LENGTH = 32
ED25519_SIGNATURE_LENGTH = 64

# USDT (NEP-141, 6 decimals)
USDT_MAINNET_CONTRACT_ID = "usdt.tether-token.near"
USDT_TESTNET_CONTRACT_ID = "usdt.fakes.testnet"
USDT_CONTRACT_BY_NETWORK = {
    NEAR_MAINNET: USDT_MAINNET_CONTRACT_ID,
    NEAR_TESTNET: USDT_TESTNET_CONTRACT_ID,
}
USDT_DECIMALS = 6

NEAR_DECIMALS = 24

# 50 Tgas
FT_TRANSFER_GAS = 50 * 10**12
STORAGE_DEPOSIT_GAS = 50 * 10**12

# NEP-141 transfers require exactly one yoctoNEAR attached
FT_TRANSFER_DEPOSIT = 1

# NEP-145 deposit for one FT account (0.00125 NEAR)
STORAGE_DEPOSIT_ONE_ACCOUNT = 1_250_000_000_000_000_000_000

# Minimum NEAR to make an implicit account exist on-chain
DEFAULT_MIN_FUNDING_NEAR = "0.002"

# Account id rules
IMPLICIT_ACCOUNT_REGEX = r"^[a-f0-9]{64}$"
IMPLICIT_ACCOUNT_LOOSE_REGEX = r"^(0x)?[a-fA-F0-9]{64}$"
NAMED_ACCOUNT_PART_REGEX = r"^[a-z0-9_-]{2,64}$"
MIN_ACCOUNT_ID_LENGTH = 2
MAX_ACCOUNT_ID_LENGTH = 64

# JSON-RPC
RPC_FINALITY = "final"
SEND_TX_WAIT_UNTIL = "FINAL"
DEFAULT_RPC_TIMEOUT_SECONDS = 30.0
