"""Chain, wallet and price providers."""

from .base import ChainGateway, PriceOracle, Provider, WalletProvider
from .price import CoingeckoPriceOracle, StaticPriceOracle, get_price_oracle
from .rpc import JsonRpcChainGateway, JsonRpcClient, JsonRpcWalletProvider, RpcError

__all__ = [
    "ChainGateway",
    "PriceOracle",
    "Provider",
    "WalletProvider",
    "CoingeckoPriceOracle",
    "StaticPriceOracle",
    "get_price_oracle",
    "JsonRpcChainGateway",
    "JsonRpcClient",
    "JsonRpcWalletProvider",
    "RpcError",
]
