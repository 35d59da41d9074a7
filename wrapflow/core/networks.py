"""Network metadata and the token list available on each network."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .tokens.models import CANONICAL_DECIMALS, TokenDescriptor


CANONICAL_SYMBOL = "sovaBTC"
CANONICAL_NAME = "Sovereign Bitcoin"

BASE_SEPOLIA = 84532
OPTIMISM_SEPOLIA = 11155420
ETHEREUM_SEPOLIA = 11155111


@dataclass(frozen=True)
class NetworkConfig:
    """Static metadata for one supported network."""
    network_id: int
    name: str
    native_symbol: str
    native_decimals: int
    endpoint_id: int                          # LayerZero endpoint id
    explorer_url: str
    canonical_token: Optional[str] = None     # sovaBTC OFT
    wrapper: Optional[str] = None
    redemption_queue: Optional[str] = None
    wrappable_tokens: tuple = field(default_factory=tuple)  # (address, symbol, name, decimals)

    @property
    def is_deployed(self) -> bool:
        return bool(self.canonical_token and self.wrapper and self.redemption_queue)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "networkId": self.network_id,
            "name": self.name,
            "nativeSymbol": self.native_symbol,
            "endpointId": self.endpoint_id,
            "explorerUrl": self.explorer_url,
            "contracts": {
                "canonicalToken": self.canonical_token,
                "wrapper": self.wrapper,
                "redemptionQueue": self.redemption_queue,
            },
            "isDeployed": self.is_deployed,
        }


NETWORKS: Dict[int, NetworkConfig] = {
    BASE_SEPOLIA: NetworkConfig(
        network_id=BASE_SEPOLIA,
        name="Base Sepolia",
        native_symbol="ETH",
        native_decimals=18,
        endpoint_id=40245,
        explorer_url="https://sepolia.basescan.org",
        canonical_token="0x43a8a1FF7b7bC32aCbcCA638b2b40CADf45CD82d",
        wrapper="0x7a08aF83566724F59D81413f3bD572E58711dE7b",
        redemption_queue="0xdD4284D33fFf9cBbe4c852664cB0496830ca46Ab",
        wrappable_tokens=(
            ("0x10E8116eBA84981A7959a1158e03eE19c0Ad41f2", "WBTC", "Wrapped Bitcoin", 8),
            ("0xf6E78618CA4bAA67259970039F49e215f15820FE", "LBTC", "Liquid Bitcoin", 8),
            ("0x0C19b539bc7C323Bec14C0A153B21D1295A42e38", "USDC", "USD Coin", 6),
        ),
    ),
    OPTIMISM_SEPOLIA: NetworkConfig(
        network_id=OPTIMISM_SEPOLIA,
        name="Optimism Sepolia",
        native_symbol="ETH",
        native_decimals=18,
        endpoint_id=40232,
        explorer_url="https://sepolia-optimism.etherscan.io",
        canonical_token="0x1b7227A7A6BcAe6c64907b1B51dD0801C3E8ba30",
        wrapper="0x43a8a1FF7b7bC32aCbcCA638b2b40CADf45CD82d",
        redemption_queue="0x3793FaA1bD71258336c877427b105B2E74e8C030",
        wrappable_tokens=(
            ("0x6f5249F8507445F1F0178eD162097bc4a262404E", "WBTC", "Wrapped Bitcoin", 8),
            ("0xBc2945fa12bF06fC292dac00BbbaF1e52eFD5A22", "LBTC", "Liquid Bitcoin", 8),
            ("0xA57484Ac87b23668A19f388eB5812cCc5A8D1EEe", "USDC", "USD Coin", 6),
        ),
    ),
    # Supported for network switching; contracts not deployed yet
    ETHEREUM_SEPOLIA: NetworkConfig(
        network_id=ETHEREUM_SEPOLIA,
        name="Ethereum Sepolia",
        native_symbol="ETH",
        native_decimals=18,
        endpoint_id=40161,
        explorer_url="https://sepolia.etherscan.io",
    ),
}


def get_network(network_id: int) -> Optional[NetworkConfig]:
    return NETWORKS.get(network_id)


def require_network(network_id: int) -> NetworkConfig:
    network = NETWORKS.get(network_id)
    if network is None:
        raise ValueError(f"Unsupported network: {network_id}")
    return network


def is_supported_network(network_id: Optional[int]) -> bool:
    return network_id in NETWORKS


def deployed_networks() -> List[NetworkConfig]:
    return [network for network in NETWORKS.values() if network.is_deployed]


def canonical_token_for(network_id: int) -> Optional[TokenDescriptor]:
    network = NETWORKS.get(network_id)
    if network is None or not network.canonical_token:
        return None
    return TokenDescriptor(
        address=network.canonical_token,
        symbol=CANONICAL_SYMBOL,
        name=CANONICAL_NAME,
        decimals=CANONICAL_DECIMALS,
        network_id=network_id,
        can_bridge=True,
        can_redeem=True,
        is_canonical=True,
    )


def tokens_for_network(network_id: int) -> List[TokenDescriptor]:
    """
    Token list for one network: its wrappable tokens followed by the
    canonical token. Empty for unknown or undeployed networks.
    """
    network = NETWORKS.get(network_id)
    if network is None or not network.is_deployed:
        return []

    tokens = [
        TokenDescriptor(
            address=address,
            symbol=symbol,
            name=name,
            decimals=decimals,
            network_id=network_id,
            can_wrap=True,
        )
        for address, symbol, name, decimals in network.wrappable_tokens
    ]
    canonical = canonical_token_for(network_id)
    if canonical is not None:
        tokens.append(canonical)
    return tokens


def all_tokens() -> List[TokenDescriptor]:
    """Every token on every deployed network, for cross-network selection."""
    tokens: List[TokenDescriptor] = []
    for network in deployed_networks():
        tokens.extend(tokens_for_network(network.network_id))
    return tokens


def find_token(network_id: int, address_or_symbol: str) -> Optional[TokenDescriptor]:
    """Look a token up by address (case-insensitive) or symbol on one network."""
    needle = address_or_symbol.lower()
    for token in tokens_for_network(network_id):
        if token.address.lower() == needle or token.symbol.lower() == needle:
            return token
    return None
