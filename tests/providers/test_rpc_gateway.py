"""
Tests for the JSON-RPC gateway and wallet provider, against an in-process
httpx transport.
"""

import json

import httpx
import pytest
from eth_abi import encode

from wrapflow.core.errors import GatewayError, WalletRejection
from wrapflow.core.execution import CallBuilder
from wrapflow.core.redemption import redemption_request_id
from wrapflow.core.execution.tx_builder import (
    ERC20_ALLOWANCE_SELECTOR,
    ERC20_BALANCE_OF_SELECTOR,
    ERC20_DECIMALS_SELECTOR,
    ERC20_SYMBOL_SELECTOR,
    GET_AVAILABLE_RESERVE_SELECTOR,
    GET_REDEMPTION_REQUEST_SELECTOR,
    OFT_QUOTE_SEND_SELECTOR,
)
from wrapflow.core.networks import BASE_SEPOLIA, OPTIMISM_SEPOLIA, canonical_token_for, find_token
from wrapflow.providers import JsonRpcChainGateway, JsonRpcClient, JsonRpcWalletProvider, RpcError


ACCOUNT = "0x1111111111111111111111111111111111111111"
OTHER_ACCOUNT = "0x2222222222222222222222222222222222222222"
RPC_URL = "https://rpc.test"
WALLET_URL = "https://wallet.test"


def _word(value: int) -> str:
    return "0x" + format(value, "064x")


class FakeNode:
    """Answers JSON-RPC requests from a table keyed by method or call selector."""

    def __init__(self):
        self.calls = []
        self.eth_call = {}
        self.methods = {}
        self.receipts = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.calls.append((str(request.url), method, params))

        if method == "eth_call":
            selector = params[0]["data"][:10]
            result = self.eth_call[selector]
        elif method == "eth_getTransactionReceipt":
            result = self.receipts.pop(0) if self.receipts else None
        else:
            result = self.methods[method]

        if isinstance(result, dict) and "error" in result:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": result["error"]})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def node():
    return FakeNode()


@pytest.fixture
def rpc(node):
    return JsonRpcClient(client=httpx.AsyncClient(transport=httpx.MockTransport(node.handler)))


@pytest.fixture
def wallet(rpc):
    return JsonRpcWalletProvider(url=WALLET_URL, rpc=rpc)


@pytest.fixture
def gateway(wallet, rpc):
    return JsonRpcChainGateway(
        wallet,
        rpc_urls={BASE_SEPOLIA: RPC_URL, OPTIMISM_SEPOLIA: RPC_URL},
        rpc=rpc,
        receipt_poll_seconds=0,
    )


# =============================================================================
# Reads
# =============================================================================

class TestReads:

    @pytest.mark.asyncio
    async def test_balance_and_allowance(self, gateway, node):
        wbtc = find_token(BASE_SEPOLIA, "WBTC")
        node.eth_call[ERC20_BALANCE_OF_SELECTOR] = _word(150_000_000)
        node.eth_call[ERC20_ALLOWANCE_SELECTOR] = _word(2**256 - 1)

        assert await gateway.read_balance(wbtc, ACCOUNT) == 150_000_000
        assert await gateway.read_allowance(wbtc, ACCOUNT, "0x7a08aF83566724F59D81413f3bD572E58711dE7b") == 2**256 - 1

        url, method, params = node.calls[0]
        assert url == RPC_URL
        assert params[0]["to"] == wbtc.address
        assert params[1] == "latest"

    @pytest.mark.asyncio
    async def test_token_metadata(self, gateway, node):
        node.eth_call[ERC20_DECIMALS_SELECTOR] = _word(6)
        node.eth_call[ERC20_SYMBOL_SELECTOR] = "0x" + encode(["string"], ["USDC"]).hex()
        node.eth_call["0x06fdde03"] = "0x" + encode(["string"], ["USD Coin"]).hex()

        metadata = await gateway.read_token_metadata(BASE_SEPOLIA, "0x0C19b539bc7C323Bec14C0A153B21D1295A42e38")

        assert metadata["decimals"] == 6
        assert metadata["symbol"] == "USDC"
        assert metadata["name"] == "USD Coin"

    @pytest.mark.asyncio
    async def test_gas_price(self, gateway, node):
        node.methods["eth_gasPrice"] = hex(12 * 10**9)
        assert await gateway.read_gas_price(BASE_SEPOLIA) == 12 * 10**9

    @pytest.mark.asyncio
    async def test_unconfigured_network(self, gateway):
        with pytest.raises(GatewayError):
            await gateway.read_gas_price(1)

    @pytest.mark.asyncio
    async def test_rpc_error_object(self, gateway, node):
        node.methods["eth_gasPrice"] = {"error": {"code": -32000, "message": "header not found"}}

        with pytest.raises(RpcError) as exc:
            await gateway.read_gas_price(BASE_SEPOLIA)
        assert exc.value.code == -32000

    @pytest.mark.asyncio
    async def test_transport_error_is_gateway_error(self):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        rpc = JsonRpcClient(client=httpx.AsyncClient(transport=httpx.MockTransport(broken)))
        with pytest.raises(GatewayError):
            await rpc.call(RPC_URL, "eth_chainId", [])


# =============================================================================
# Redemption queue
# =============================================================================

class TestRedemptionReads:

    @pytest.mark.asyncio
    async def test_redemption_request_decoded(self, gateway, node):
        wbtc = find_token(BASE_SEPOLIA, "WBTC")
        node.eth_call[GET_REDEMPTION_REQUEST_SELECTOR] = "0x" + encode(
            ["address", "address", "uint256", "uint256", "uint256", "bool"],
            [ACCOUNT, wbtc.address, 50_000_000, 50_000_000, 1_700_000_000, False],
        ).hex()

        requests = await gateway.read_redemption_requests(BASE_SEPOLIA, ACCOUNT)

        assert len(requests) == 1
        request = requests[0]
        assert request.request_time == 1_700_000_000
        assert request.id == redemption_request_id(ACCOUNT, 1_700_000_000)
        assert request.id != redemption_request_id(OTHER_ACCOUNT, 1_700_000_000)
        assert request.owner.lower() == ACCOUNT
        assert request.token.lower() == wbtc.address.lower()
        assert request.canonical_amount == 50_000_000
        assert not request.fulfilled

    @pytest.mark.asyncio
    async def test_empty_slot(self, gateway, node):
        zero = "0x" + "0" * 40
        node.eth_call[GET_REDEMPTION_REQUEST_SELECTOR] = "0x" + encode(
            ["address", "address", "uint256", "uint256", "uint256", "bool"],
            [zero, zero, 0, 0, 0, False],
        ).hex()

        assert await gateway.read_redemption_requests(BASE_SEPOLIA, ACCOUNT) == []

    @pytest.mark.asyncio
    async def test_available_reserve_reads_queue_contract(self, gateway, node):
        wbtc = find_token(BASE_SEPOLIA, "WBTC")
        node.eth_call[GET_AVAILABLE_RESERVE_SELECTOR] = _word(7_000)

        assert await gateway.read_available_reserve(wbtc) == 7_000
        assert node.calls[0][2][0]["to"] == "0xdD4284D33fFf9cBbe4c852664cB0496830ca46Ab"

    @pytest.mark.asyncio
    async def test_bridge_quote_reads_native_fee(self, gateway, node):
        node.eth_call[OFT_QUOTE_SEND_SELECTOR] = "0x" + encode(["uint256", "uint256"], [3 * 10**15, 0]).hex()

        fee = await gateway.quote_bridge_fee(canonical_token_for(BASE_SEPOLIA), OPTIMISM_SEPOLIA, ACCOUNT, 10**8)

        assert fee == 3 * 10**15


# =============================================================================
# Wallet and writes
# =============================================================================

class TestWallet:

    @pytest.mark.asyncio
    async def test_account_and_network(self, wallet, node):
        node.methods["eth_accounts"] = [ACCOUNT]
        node.methods["eth_chainId"] = hex(BASE_SEPOLIA)

        assert await wallet.current_account() == ACCOUNT
        assert await wallet.current_network() == BASE_SEPOLIA

    @pytest.mark.asyncio
    async def test_no_account(self, wallet, node):
        node.methods["eth_accounts"] = []
        assert await wallet.current_account() is None

    @pytest.mark.asyncio
    async def test_network_switch_request(self, wallet, node):
        node.methods["wallet_switchEthereumChain"] = None

        await wallet.request_network_switch(OPTIMISM_SEPOLIA)

        assert node.calls[0][1:] == ("wallet_switchEthereumChain", [{"chainId": hex(OPTIMISM_SEPOLIA)}])

    @pytest.mark.asyncio
    async def test_submit_goes_through_wallet(self, gateway, node):
        node.methods["eth_sendTransaction"] = "0xabc"
        call = CallBuilder.build_approve(BASE_SEPOLIA, ACCOUNT, ACCOUNT, ACCOUNT, 5)

        assert await gateway.submit(call) == "0xabc"
        url, method, params = node.calls[0]
        assert url == WALLET_URL
        assert params[0]["chainId"] == hex(BASE_SEPOLIA)

    @pytest.mark.asyncio
    async def test_user_rejection(self, gateway, node):
        node.methods["eth_sendTransaction"] = {"error": {"code": 4001, "message": "User rejected the request."}}
        call = CallBuilder.build_approve(BASE_SEPOLIA, ACCOUNT, ACCOUNT, ACCOUNT, 5)

        with pytest.raises(WalletRejection):
            await gateway.submit(call)


class TestReceipts:

    @pytest.mark.asyncio
    async def test_polls_until_mined(self, gateway, node):
        node.receipts = [None, {"status": "0x1", "blockNumber": "0x10", "gasUsed": "0x5208"}]

        receipt = await gateway.wait_for_receipt(BASE_SEPOLIA, "0xabc")

        assert receipt.success
        assert receipt.block_number == 16
        assert receipt.gas_used == 21_000
        assert [call[1] for call in node.calls] == ["eth_getTransactionReceipt"] * 2

    @pytest.mark.asyncio
    async def test_reverted(self, gateway, node):
        node.receipts = [{"status": "0x0", "blockNumber": "0x10"}]

        receipt = await gateway.wait_for_receipt(BASE_SEPOLIA, "0xabc")

        assert not receipt.success
