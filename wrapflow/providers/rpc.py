"""
JSON-RPC chain gateway and wallet provider.

Reads go straight to each network's public RPC endpoint via eth_call.
Writes go through the wallet endpoint (eth_sendTransaction), which signs;
this package never holds keys.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from eth_abi import decode

from ..config import settings
from ..core.errors import ErrorContext, GatewayError, SuggestedAction, WalletRejection, USER_REJECTED_CODE
from ..core.execution.models import PreparedCall, Receipt
from ..core.execution.tx_builder import (
    ERC20_DECIMALS_SELECTOR,
    ERC20_NAME_SELECTOR,
    ERC20_SYMBOL_SELECTOR,
    encode_allowance,
    encode_balance_of,
    encode_get_available_reserve,
    encode_get_redemption_request,
    encode_quote_send,
)
from ..core.networks import get_network, require_network
from ..core.redemption.models import RedemptionRequest, redemption_request_id
from ..core.tokens.models import TokenDescriptor
from .base import ChainGateway, WalletProvider

logger = logging.getLogger(__name__)


class RpcError(GatewayError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, method: str, error: Dict[str, Any]):
        self.code = error.get("code")
        super().__init__(
            f"RPC error calling {method}: {error.get('message', error)}",
            ErrorContext(suggested_action=SuggestedAction.RETRY, details={"code": self.code}),
        )


class JsonRpcClient:
    """Minimal async JSON-RPC 2.0 client over httpx."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        if client is None:
            client = httpx.AsyncClient(timeout=timeout or settings.request_timeout_seconds)
        self._client = client
        self._request_id = 0

    async def call(self, url: str, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            raise GatewayError(f"Transport error calling {method}: {e}") from e

        if "error" in result:
            raise RpcError(method, result["error"])

        return result.get("result")

    async def close(self) -> None:
        await self._client.aclose()


def _word(data: str, index: int) -> int:
    raw = data[2:] if data.startswith("0x") else data
    return int(raw[index * 64:(index + 1) * 64] or "0", 16)


def _decode_string(data: str) -> str:
    raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    if not raw:
        return ""
    if len(raw) == 32:
        # Some older tokens return bytes32 instead of string
        return raw.rstrip(b"\x00").decode("utf-8", errors="replace")
    return decode(["string"], raw)[0]


class JsonRpcWalletProvider(WalletProvider):
    """Wallet reachable over JSON-RPC (a local signer or EIP-1193 bridge)."""

    name = "jsonrpc-wallet"

    def __init__(self, url: Optional[str] = None, rpc: Optional[JsonRpcClient] = None):
        self.url = url or settings.wallet_rpc_url
        self.rpc = rpc if rpc is not None else JsonRpcClient()

    async def ready(self) -> bool:
        return bool(self.url)

    async def current_account(self) -> Optional[str]:
        accounts = await self.rpc.call(self.url, "eth_accounts", [])
        return accounts[0] if accounts else None

    async def current_network(self) -> Optional[int]:
        chain_id = await self.rpc.call(self.url, "eth_chainId", [])
        return int(chain_id, 16) if chain_id else None

    async def request_network_switch(self, network_id: int) -> None:
        await self._wallet_call("wallet_switchEthereumChain", [{"chainId": hex(network_id)}])

    async def send_transaction(self, call: PreparedCall) -> str:
        return await self._wallet_call("eth_sendTransaction", [call.to_dict()])

    async def _wallet_call(self, method: str, params: List[Any]) -> Any:
        try:
            return await self.rpc.call(self.url, method, params)
        except RpcError as e:
            if e.code == USER_REJECTED_CODE:
                raise WalletRejection(e.message) from e
            raise


class JsonRpcChainGateway(ChainGateway):
    """
    ChainGateway over per-network JSON-RPC endpoints.

    Usage:
        wallet = JsonRpcWalletProvider()
        gateway = JsonRpcChainGateway(wallet)
        balance = await gateway.read_balance(token, account)
    """

    name = "jsonrpc"

    def __init__(
        self,
        wallet: JsonRpcWalletProvider,
        rpc_urls: Optional[Dict[int, str]] = None,
        rpc: Optional[JsonRpcClient] = None,
        receipt_poll_seconds: Optional[float] = None,
    ):
        self.wallet = wallet
        self.rpc = rpc if rpc is not None else JsonRpcClient()
        self._rpc_urls = dict(rpc_urls) if rpc_urls is not None else dict(settings.rpc_urls)
        self.receipt_poll_seconds = (
            settings.receipt_poll_seconds if receipt_poll_seconds is None else receipt_poll_seconds
        )

    async def ready(self) -> bool:
        return bool(self._rpc_urls)

    async def _rpc_call(self, network_id: int, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the network's endpoint."""
        rpc_url = self._rpc_urls.get(network_id)
        if not rpc_url:
            raise GatewayError(f"No RPC URL configured for network {network_id}")
        return await self.rpc.call(rpc_url, method, params)

    async def _eth_call(self, network_id: int, to: str, data: str) -> str:
        return await self._rpc_call(network_id, "eth_call", [{"to": to, "data": data}, "latest"])

    async def read_balance(self, token: TokenDescriptor, account: str) -> int:
        result = await self._eth_call(token.network_id, token.address, encode_balance_of(account))
        return _word(result, 0)

    async def read_allowance(self, token: TokenDescriptor, owner: str, spender: str) -> int:
        result = await self._eth_call(token.network_id, token.address, encode_allowance(owner, spender))
        return _word(result, 0)

    async def read_token_metadata(self, network_id: int, address: str) -> Dict[str, Any]:
        decimals, symbol, name = await asyncio.gather(
            self._eth_call(network_id, address, ERC20_DECIMALS_SELECTOR),
            self._eth_call(network_id, address, ERC20_SYMBOL_SELECTOR),
            self._eth_call(network_id, address, ERC20_NAME_SELECTOR),
        )
        return {
            "address": address,
            "networkId": network_id,
            "decimals": _word(decimals, 0),
            "symbol": _decode_string(symbol),
            "name": _decode_string(name),
        }

    async def read_gas_price(self, network_id: int) -> int:
        return int(await self._rpc_call(network_id, "eth_gasPrice", []), 16)

    async def submit(self, call: PreparedCall) -> str:
        tx_ref = await self.wallet.send_transaction(call)
        logger.info(f"Submitted {call.description or 'transaction'} on {call.network_id}: {tx_ref}")
        return tx_ref

    async def wait_for_receipt(self, network_id: int, tx_ref: str) -> Receipt:
        """Poll for the receipt until it exists. The caller bounds the wait."""
        while True:
            try:
                receipt = await self._rpc_call(network_id, "eth_getTransactionReceipt", [tx_ref])
                if receipt:
                    # 0x1 = success, 0x0 = revert
                    status = int(receipt.get("status", "0x1"), 16)
                    return Receipt(
                        tx_ref=tx_ref,
                        success=status == 1,
                        block_number=int(receipt["blockNumber"], 16) if receipt.get("blockNumber") else None,
                        gas_used=int(receipt["gasUsed"], 16) if receipt.get("gasUsed") else None,
                    )
            except GatewayError as e:
                logger.warning(f"Error checking transaction status: {e}")

            await asyncio.sleep(self.receipt_poll_seconds)

    async def read_redemption_requests(self, network_id: int, owner: str) -> List[RedemptionRequest]:
        """
        The queue keeps one request slot per user. An empty slot has a zero
        request time. The id is derived from the owner and request time.
        """
        network = require_network(network_id)
        result = await self._eth_call(network_id, network.redemption_queue, encode_get_redemption_request(owner))
        raw = bytes.fromhex(result[2:] if result.startswith("0x") else result)
        user, token, canonical_amount, underlying_amount, request_time, fulfilled = decode(
            ["address", "address", "uint256", "uint256", "uint256", "bool"], raw
        )
        if request_time == 0:
            return []
        return [
            RedemptionRequest(
                id=redemption_request_id(user, request_time),
                owner=user,
                token=token,
                canonical_amount=canonical_amount,
                underlying_amount=underlying_amount,
                request_time=request_time,
                fulfilled=fulfilled,
            )
        ]

    async def read_available_reserve(self, token: TokenDescriptor) -> int:
        network = require_network(token.network_id)
        result = await self._eth_call(
            token.network_id,
            network.redemption_queue,
            encode_get_available_reserve(token.address),
        )
        return _word(result, 0)

    async def quote_bridge_fee(
        self,
        source: TokenDescriptor,
        destination_network_id: int,
        recipient: str,
        amount: int,
    ) -> Optional[int]:
        destination = get_network(destination_network_id)
        if destination is None:
            return None
        result = await self._eth_call(
            source.network_id,
            source.address,
            encode_quote_send(destination.endpoint_id, recipient, amount),
        )
        # MessagingFee(nativeFee, lzTokenFee)
        return _word(result, 0)

    async def close(self) -> None:
        await self.rpc.close()
