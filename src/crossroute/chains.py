"""Chain and token registry.

Internal chain ids follow EVM conventions; Solana uses the deBridge id
(7565164) and is mapped to Relay's own id where needed.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional


@dataclass(frozen=True)
class TokenInfo:
    """A token on a specific chain."""

    address: str
    symbol: str
    decimals: int


@dataclass
class ChainConfig:
    """Configuration for a blockchain."""

    chain_id: int
    name: str
    symbol: str  # Native gas token
    explorer_url: str
    tokens: list[TokenInfo] = field(default_factory=list)


# ======================
# Chain IDs
# ======================

CHAIN_ID_ETHEREUM = 1
CHAIN_ID_OPTIMISM = 10
CHAIN_ID_BNB = 56
CHAIN_ID_POLYGON = 137
CHAIN_ID_BASE = 8453
CHAIN_ID_ARBITRUM = 42161
CHAIN_ID_AVALANCHE = 43114
CHAIN_ID_SOLANA = 7565164

RELAY_CHAIN_ID_SOLANA = 792703809

# ======================
# Solana Mints
# ======================

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT_SOLANA = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT_SOLANA = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"

LAMPORTS_PER_SOL = 10**9

STABLECOIN_SYMBOLS = {"USDC", "USDT"}

_NATIVE_EVM = "0x0000000000000000000000000000000000000000"

# ======================
# Chain Configurations
# ======================

CHAINS: dict[int, ChainConfig] = {
    CHAIN_ID_ETHEREUM: ChainConfig(
        chain_id=CHAIN_ID_ETHEREUM,
        name="Ethereum",
        symbol="ETH",
        explorer_url="https://etherscan.io",
        tokens=[
            TokenInfo("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", 6),
            TokenInfo(_NATIVE_EVM, "ETH", 18),
        ],
    ),
    CHAIN_ID_OPTIMISM: ChainConfig(
        chain_id=CHAIN_ID_OPTIMISM,
        name="Optimism",
        symbol="ETH",
        explorer_url="https://optimistic.etherscan.io",
        tokens=[TokenInfo("0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85", "USDC", 6)],
    ),
    CHAIN_ID_BNB: ChainConfig(
        chain_id=CHAIN_ID_BNB,
        name="BNB Chain",
        symbol="BNB",
        explorer_url="https://bscscan.com",
        tokens=[
            # Binance-peg USDC uses 18 decimals
            TokenInfo("0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d", "USDC", 18),
            TokenInfo(_NATIVE_EVM, "BNB", 18),
        ],
    ),
    CHAIN_ID_POLYGON: ChainConfig(
        chain_id=CHAIN_ID_POLYGON,
        name="Polygon",
        symbol="MATIC",
        explorer_url="https://polygonscan.com",
        tokens=[
            TokenInfo("0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", "USDC", 6),
            TokenInfo("0x0000000000000000000000000000000000001010", "MATIC", 18),
        ],
    ),
    CHAIN_ID_BASE: ChainConfig(
        chain_id=CHAIN_ID_BASE,
        name="Base",
        symbol="ETH",
        explorer_url="https://basescan.org",
        tokens=[
            TokenInfo("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", "USDC", 6),
            TokenInfo("0x4200000000000000000000000000000000000006", "WETH", 18),
        ],
    ),
    CHAIN_ID_ARBITRUM: ChainConfig(
        chain_id=CHAIN_ID_ARBITRUM,
        name="Arbitrum",
        symbol="ETH",
        explorer_url="https://arbiscan.io",
        tokens=[TokenInfo("0xaf88d065e77c8cC2239327C5EDb3A432268e5831", "USDC", 6)],
    ),
    CHAIN_ID_AVALANCHE: ChainConfig(
        chain_id=CHAIN_ID_AVALANCHE,
        name="Avalanche",
        symbol="AVAX",
        explorer_url="https://snowtrace.io",
        tokens=[
            TokenInfo("0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E", "USDC", 6),
            TokenInfo(_NATIVE_EVM, "AVAX", 18),
        ],
    ),
    CHAIN_ID_SOLANA: ChainConfig(
        chain_id=CHAIN_ID_SOLANA,
        name="Solana",
        symbol="SOL",
        explorer_url="https://explorer.solana.com",
        tokens=[
            TokenInfo(USDC_MINT_SOLANA, "USDC", 6),
            TokenInfo(SOL_MINT, "SOL", 9),
            TokenInfo(USDT_MINT_SOLANA, "USDT", 6),
        ],
    ),
}


def get_native_symbol(chain_id: int) -> Optional[str]:
    chain = CHAINS.get(chain_id)
    return chain.symbol if chain else None


def to_relay_chain_id(chain_id: int) -> int:
    """Map an internal chain id to Relay's id space."""
    if chain_id == CHAIN_ID_SOLANA:
        return RELAY_CHAIN_ID_SOLANA
    return chain_id


def to_debridge_chain_id(chain_id: int) -> str:
    """Map an internal chain id to deBridge's id (a string in its API)."""
    return str(chain_id)


def normalize_token_address(address: str) -> str:
    """Lowercase hex addresses; leave base58 and other encodings untouched."""
    address = address.strip()
    if address.startswith("0x"):
        return address.lower()
    return address


def addresses_match(a: str, b: str) -> bool:
    return normalize_token_address(a) == normalize_token_address(b)


def find_token(chain_id: int, address: str) -> Optional[TokenInfo]:
    """Look up a token in the registry by address."""
    chain = CHAINS.get(chain_id)
    if chain is None:
        return None
    for token in chain.tokens:
        if addresses_match(token.address, address):
            return token
    return None


def get_token_decimals(chain_id: int, address: str, default: int = 6) -> int:
    token = find_token(chain_id, address)
    return token.decimals if token else default


def get_token_symbol(chain_id: int, address: str) -> Optional[str]:
    token = find_token(chain_id, address)
    return token.symbol if token else None


def format_raw_amount(raw: str, decimals: int, max_decimals: int = 3) -> str:
    """Format a raw integer amount for display.

    Rounds half-up to at most ``max_decimals`` places and trims trailing
    zeros. Unparseable input is returned unchanged.
    """
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return str(raw)
    if value == 0:
        return "0"
    try:
        amount = Decimal(value).scaleb(-max(0, decimals))
        quantum = Decimal(1).scaleb(-max_decimals)
        rounded = amount.quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return str(raw)
    text = format(rounded, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def explorer_tx_url(signature: str, chain_id: int = CHAIN_ID_SOLANA) -> str:
    """Explorer link for a transaction signature or hash."""
    chain = CHAINS.get(chain_id) or CHAINS[CHAIN_ID_ETHEREUM]
    return f"{chain.explorer_url}/tx/{signature}"
