from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..core.execution.models import PreparedCall, Receipt
from ..core.redemption.models import RedemptionRequest
from ..core.tokens.models import TokenDescriptor


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        return {"status": "healthy" if await self.ready() else "unavailable"}


class ChainGateway(Provider):
    """Reads chain state and submits calls signed by the wallet."""

    @abstractmethod
    async def read_balance(self, token: TokenDescriptor, account: str) -> int:
        """Token balance of ``account`` in the token's smallest unit"""
        pass

    @abstractmethod
    async def read_allowance(self, token: TokenDescriptor, owner: str, spender: str) -> int:
        """Allowance ``owner`` granted ``spender`` for ``token``"""
        pass

    @abstractmethod
    async def read_token_metadata(self, network_id: int, address: str) -> Dict[str, Any]:
        """Symbol, name and decimals of an ERC20"""
        pass

    @abstractmethod
    async def read_gas_price(self, network_id: int) -> int:
        """Current gas price in wei"""
        pass

    @abstractmethod
    async def submit(self, call: PreparedCall) -> str:
        """Hand a call to the wallet for signing; returns the transaction reference"""
        pass

    @abstractmethod
    async def wait_for_receipt(self, network_id: int, tx_ref: str) -> Receipt:
        """Wait until the transaction is mined; never resubmits"""
        pass

    @abstractmethod
    async def read_redemption_requests(self, network_id: int, owner: str) -> List[RedemptionRequest]:
        """Redemption requests owned by ``owner`` on the network's queue"""
        pass

    @abstractmethod
    async def read_available_reserve(self, token: TokenDescriptor) -> int:
        """Underlying reserve the redemption queue can pay out, in token units"""
        pass

    async def quote_bridge_fee(
        self,
        source: TokenDescriptor,
        destination_network_id: int,
        recipient: str,
        amount: int,
    ) -> Optional[int]:
        """Native messaging fee for a cross-chain send; None when quoting is unsupported"""
        return None


class WalletProvider(Provider):
    """The user's wallet: account, active network, network switching."""

    @abstractmethod
    async def current_account(self) -> Optional[str]:
        pass

    @abstractmethod
    async def current_network(self) -> Optional[int]:
        pass

    @abstractmethod
    async def request_network_switch(self, network_id: int) -> None:
        pass


class PriceOracle(Provider):
    """USD prices for native assets"""

    @abstractmethod
    async def native_asset_usd_price(self, network_id: int) -> Optional[Decimal]:
        pass
