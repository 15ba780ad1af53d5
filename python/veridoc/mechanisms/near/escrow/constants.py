"""Constants for NEAR escrow settlement."""

# Platform keeps 15%, specialist receives the rest
PLATFORM_FEE_PERCENTAGE = 15
SPECIALIST_PERCENTAGE = 100 - PLATFORM_FEE_PERCENTAGE

# Leg identifiers
LEG_SPECIALIST = "specialist"
LEG_PLATFORM_FEE = "platform_fee"

# Settlement result status
STATUS_SETTLED = "settled"
STATUS_PARTIAL = "partially_settled"

# Record keeper paths (relative to its base URL)
RECORD_KEEPER_RELEASE_PATH = "/api/consultations/{consultation_id}/release"
RECORD_KEEPER_PENDING_PATH = "/api/consultations/pending-release"
RECORD_KEEPER_CONFIRM_PAYMENT_PATH = "/api/consultations/{consultation_id}/confirm-payment"

# The only method a relayed escrow deposit may call on the token contract
DEPOSIT_METHOD = "ft_transfer"
