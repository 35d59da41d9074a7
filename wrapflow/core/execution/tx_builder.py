"""
Call builder for the wrapper, redemption queue and OFT contracts.
"""

from typing import Tuple

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from .models import PreparedCall


def function_selector(signature: str) -> str:
    """4-byte selector of a Solidity function signature, 0x-prefixed."""
    return "0x" + keccak(text=signature)[:4].hex()


# ERC20
ERC20_APPROVE_SELECTOR = "0x095ea7b3"  # approve(address,uint256)
ERC20_BALANCE_OF_SELECTOR = function_selector("balanceOf(address)")
ERC20_ALLOWANCE_SELECTOR = function_selector("allowance(address,address)")
ERC20_DECIMALS_SELECTOR = function_selector("decimals()")
ERC20_SYMBOL_SELECTOR = function_selector("symbol()")
ERC20_NAME_SELECTOR = function_selector("name()")

# Wrapper / redemption queue
DEPOSIT_SELECTOR = function_selector("deposit(address,uint256)")
REDEEM_SELECTOR = function_selector("redeem(address,uint256)")
GET_REDEMPTION_REQUEST_SELECTOR = function_selector("getRedemptionRequest(address)")
GET_AVAILABLE_RESERVE_SELECTOR = function_selector("getAvailableReserve(address)")

# LayerZero OFT
SEND_PARAM_TYPE = "(uint32,bytes32,uint256,uint256,bytes,bytes,bytes)"
MESSAGING_FEE_TYPE = "(uint256,uint256)"
OFT_SEND_SELECTOR = function_selector(f"send({SEND_PARAM_TYPE},{MESSAGING_FEE_TYPE},address)")
OFT_QUOTE_SEND_SELECTOR = function_selector(f"quoteSend({SEND_PARAM_TYPE},bool)")

# Type 3 executor options: lzReceive with 500k destination gas
DEFAULT_LZ_OPTIONS = bytes.fromhex("0003010011010000000000000000000000000007a120")

BRIDGE_GAS_LIMIT = 300_000


def _encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    return format(value, "064x")


def _encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    addr = address.lower().replace("0x", "")
    return addr.zfill(64)


def address_to_bytes32(address: str) -> bytes:
    """Left-pad an EVM address into the bytes32 recipient OFT expects."""
    return bytes.fromhex(_encode_address(address))


def encode_balance_of(account: str) -> str:
    return ERC20_BALANCE_OF_SELECTOR + _encode_address(account)


def encode_allowance(owner: str, spender: str) -> str:
    return ERC20_ALLOWANCE_SELECTOR + _encode_address(owner) + _encode_address(spender)


def encode_get_redemption_request(owner: str) -> str:
    return GET_REDEMPTION_REQUEST_SELECTOR + _encode_address(owner)


def encode_get_available_reserve(token: str) -> str:
    return GET_AVAILABLE_RESERVE_SELECTOR + _encode_address(token)


def _send_param(dst_eid: int, recipient: str, amount: int, extra_options: bytes) -> Tuple:
    return (dst_eid, address_to_bytes32(recipient), amount, amount, extra_options, b"", b"")


def encode_quote_send(
    dst_eid: int,
    recipient: str,
    amount: int,
    extra_options: bytes = DEFAULT_LZ_OPTIONS,
) -> str:
    params = encode(
        [SEND_PARAM_TYPE, "bool"],
        [_send_param(dst_eid, recipient, amount, extra_options), False],
    )
    return OFT_QUOTE_SEND_SELECTOR + params.hex()


class CallBuilder:
    """
    Builds the contract calls a flow submits.

    Handles:
    - ERC20 approvals of the wrapper
    - Wrapper deposits (amount in canonical units)
    - Redemption requests on the queue
    - OFT cross-chain sends
    """

    @staticmethod
    def build_approve(
        network_id: int,
        owner_address: str,
        token_address: str,
        spender_address: str,
        amount: int,
        description: str = "",
    ) -> PreparedCall:
        # approve(address spender, uint256 amount)
        calldata = (
            ERC20_APPROVE_SELECTOR +
            _encode_address(spender_address) +
            _encode_uint256(amount)
        )
        return PreparedCall(
            network_id=network_id,
            from_address=owner_address.lower(),
            to_address=token_address.lower(),
            data=calldata,
            description=description or f"Approve {spender_address[:10]}... to spend tokens",
        )

    @staticmethod
    def build_deposit(
        network_id: int,
        owner_address: str,
        wrapper_address: str,
        token_address: str,
        canonical_amount: int,
        description: str = "",
    ) -> PreparedCall:
        """The wrapper takes the amount in canonical units, not token units."""
        # deposit(address token, uint256 amount)
        calldata = (
            DEPOSIT_SELECTOR +
            _encode_address(token_address) +
            _encode_uint256(canonical_amount)
        )
        return PreparedCall(
            network_id=network_id,
            from_address=owner_address.lower(),
            to_address=wrapper_address.lower(),
            data=calldata,
            description=description or "Deposit into wrapper",
        )

    @staticmethod
    def build_redeem(
        network_id: int,
        owner_address: str,
        queue_address: str,
        token_address: str,
        canonical_amount: int,
        description: str = "",
    ) -> PreparedCall:
        # redeem(address token, uint256 sovaAmount)
        calldata = (
            REDEEM_SELECTOR +
            _encode_address(token_address) +
            _encode_uint256(canonical_amount)
        )
        return PreparedCall(
            network_id=network_id,
            from_address=owner_address.lower(),
            to_address=queue_address.lower(),
            data=calldata,
            description=description or "Queue redemption",
        )

    @staticmethod
    def build_bridge_send(
        network_id: int,
        owner_address: str,
        oft_address: str,
        dst_eid: int,
        recipient: str,
        amount: int,
        native_fee: int,
        extra_options: bytes = DEFAULT_LZ_OPTIONS,
        description: str = "",
    ) -> PreparedCall:
        """
        Build an OFT send. The messaging fee is attached as value and the
        minimum received equals the amount sent (no slippage on OFT).
        """
        params = encode(
            [SEND_PARAM_TYPE, MESSAGING_FEE_TYPE, "address"],
            [
                _send_param(dst_eid, recipient, amount, extra_options),
                (native_fee, 0),
                to_checksum_address(recipient),
            ],
        )
        return PreparedCall(
            network_id=network_id,
            from_address=owner_address.lower(),
            to_address=oft_address.lower(),
            data=OFT_SEND_SELECTOR + params.hex(),
            value=native_fee,
            gas_limit=BRIDGE_GAS_LIMIT,
            description=description or f"Bridge to endpoint {dst_eid}",
        )
