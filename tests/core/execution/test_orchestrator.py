"""
Tests for the transaction orchestrator.

The gateway and wallet are AsyncMocks; every scenario drives real step
state through prepare(), execute() and retry().
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from wrapflow.config import GWEI
from wrapflow.core.approval import ApprovalPolicy
from wrapflow.core.errors import (
    ApprovalRejected,
    BelowMinimumAmount,
    DestinationConfirmationTimeout,
    ErrorKind,
    FlowHalted,
    FlowInProgress,
    InsufficientAllowance,
    InsufficientBalance,
    InsufficientReserve,
    InvalidAmount,
    InvalidApprovalStrategy,
    NetworkMismatch,
    NoOperationForPair,
    ReceiptTimeout,
    TransactionRejected,
    TransactionReverted,
    WalletRejection,
)
from wrapflow.core.execution import (
    FlowRequest,
    Receipt,
    StepKind,
    StepStatus,
    TransactionOrchestrator,
)
from wrapflow.core.fees import FeeEstimator
from wrapflow.core.networks import BASE_SEPOLIA, OPTIMISM_SEPOLIA, canonical_token_for, find_token
from wrapflow.core.redemption import RedemptionRequest
from wrapflow.core.tokens import OperationKind


ACCOUNT = "0x1111111111111111111111111111111111111111"
DELAY = 864_000
T0 = 1_700_000_000


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def wbtc():
    return find_token(BASE_SEPOLIA, "WBTC")


@pytest.fixture
def base_canonical():
    return canonical_token_for(BASE_SEPOLIA)


@pytest.fixture
def op_canonical():
    return canonical_token_for(OPTIMISM_SEPOLIA)


@pytest.fixture
def wallet():
    wallet = AsyncMock()
    wallet.current_account.return_value = ACCOUNT
    wallet.current_network.return_value = BASE_SEPOLIA
    return wallet


@pytest.fixture
def gateway():
    gateway = AsyncMock()
    gateway.read_balance.return_value = 10**10
    gateway.read_allowance.return_value = 0
    gateway.read_gas_price.return_value = 10 * GWEI
    gateway.read_available_reserve.return_value = 10**12
    gateway.read_redemption_requests.return_value = []
    gateway.quote_bridge_fee.return_value = None
    gateway.wait_for_receipt.side_effect = lambda network_id, tx_ref: Receipt(tx_ref=tx_ref, success=True)
    return gateway


@pytest.fixture
def orchestrator(gateway, wallet):
    return TransactionOrchestrator(
        gateway,
        wallet,
        approval_policy=ApprovalPolicy(optimized_percent=150),
        fee_estimator=FeeEstimator(bridge_min_fee_wei=10**15),
        min_deposit_canonical=1_000,
        redemption_delay_seconds=DELAY,
        receipt_timeout_seconds=0.05,
        destination_timeout_seconds=0.05,
        destination_poll_seconds=0,
    )


def _submit_refs(*refs):
    return AsyncMock(side_effect=list(refs))


# =============================================================================
# Preparation
# =============================================================================

class TestPrepare:

    @pytest.mark.asyncio
    async def test_wrap_with_insufficient_allowance(self, orchestrator, wbtc, base_canonical):
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))

        assert flow.operation == OperationKind.WRAP
        assert [step.kind for step in flow.steps] == [StepKind.APPROVAL, StepKind.DEPOSIT]
        assert flow.approval_amount == 225_000_000
        assert flow.canonical_amount == 150_000_000
        assert all(step.status == StepStatus.PENDING for step in flow.steps)

    @pytest.mark.asyncio
    async def test_wrap_with_sufficient_allowance_skips_approval(
        self, orchestrator, gateway, wbtc, base_canonical
    ):
        gateway.read_allowance.return_value = 10**9

        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))

        assert [step.kind for step in flow.steps] == [StepKind.DEPOSIT]

    @pytest.mark.asyncio
    async def test_requested_approval_strategy_is_honoured(self, orchestrator, wbtc, base_canonical):
        flow = await orchestrator.prepare(
            FlowRequest(wbtc, base_canonical, 150_000_000, approval_strategy="exact")
        )

        assert flow.approval_amount == 150_000_000

    @pytest.mark.asyncio
    async def test_unknown_approval_strategy(self, orchestrator, gateway, wbtc, base_canonical):
        with pytest.raises(InvalidApprovalStrategy) as exc:
            await orchestrator.prepare(
                FlowRequest(wbtc, base_canonical, 150_000_000, approval_strategy="infinite")
            )

        assert exc.value.is_validation
        assert exc.value.kind == ErrorKind.INVALID_APPROVAL_STRATEGY
        gateway.read_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unwrap_steps(self, orchestrator, base_canonical, wbtc):
        flow = await orchestrator.prepare(FlowRequest(base_canonical, wbtc, 50_000_000))

        assert [step.kind for step in flow.steps] == [StepKind.QUEUE_REDEMPTION, StepKind.SECURITY_DELAY]
        assert flow.steps[1].estimated_seconds == DELAY

    @pytest.mark.asyncio
    async def test_bridge_steps_and_fee_floor(self, orchestrator, gateway, base_canonical, op_canonical):
        gateway.quote_bridge_fee.return_value = 10**12

        flow = await orchestrator.prepare(FlowRequest(base_canonical, op_canonical, 10**8))

        assert [step.kind for step in flow.steps] == [StepKind.BRIDGE_SEND, StepKind.DESTINATION_CONFIRMATION]
        assert flow.steps[1].network_id == OPTIMISM_SEPOLIA
        assert flow.bridge_fee == 10**15

    @pytest.mark.asyncio
    async def test_bridge_fee_quote_failure_uses_minimum(
        self, orchestrator, gateway, base_canonical, op_canonical
    ):
        gateway.quote_bridge_fee.side_effect = RuntimeError("execution reverted")

        flow = await orchestrator.prepare(FlowRequest(base_canonical, op_canonical, 10**8))

        assert flow.bridge_fee == 10**15

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, 1.5])
    async def test_invalid_amount(self, orchestrator, wbtc, base_canonical, amount):
        with pytest.raises(InvalidAmount):
            await orchestrator.prepare(FlowRequest(wbtc, base_canonical, amount))

    @pytest.mark.asyncio
    async def test_no_operation_for_pair(self, orchestrator, wbtc):
        usdc = find_token(BASE_SEPOLIA, "USDC")
        with pytest.raises(NoOperationForPair):
            await orchestrator.prepare(FlowRequest(wbtc, usdc, 100))

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, orchestrator, gateway, wbtc, base_canonical):
        gateway.read_balance.return_value = 10
        with pytest.raises(InsufficientBalance):
            await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 100_000))

    @pytest.mark.asyncio
    async def test_below_minimum(self, orchestrator, wbtc, base_canonical):
        with pytest.raises(BelowMinimumAmount):
            await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 999))

    @pytest.mark.asyncio
    async def test_minimum_checked_in_canonical_units(self, orchestrator, base_canonical):
        usdc = find_token(BASE_SEPOLIA, "USDC")
        # 10 units at 6 decimals is exactly 1,000 canonical units
        flow = await orchestrator.prepare(FlowRequest(usdc, base_canonical, 10))
        assert flow.canonical_amount == 1_000

    @pytest.mark.asyncio
    async def test_insufficient_reserve(self, orchestrator, gateway, base_canonical, wbtc):
        gateway.read_available_reserve.return_value = 10
        with pytest.raises(InsufficientReserve):
            await orchestrator.prepare(FlowRequest(base_canonical, wbtc, 100_000))


# =============================================================================
# Wrap execution
# =============================================================================

class TestWrapExecution:

    @pytest.mark.asyncio
    async def test_approval_then_deposit(self, orchestrator, gateway, wbtc, base_canonical):
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.read_allowance.return_value = 225_000_000
        gateway.submit = _submit_refs("0xapprove", "0xdeposit")

        result = await orchestrator.execute(flow)

        assert result.final_tx_ref == "0xdeposit"
        assert flow.is_complete
        approve_call, deposit_call = [c.args[0] for c in gateway.submit.await_args_list]
        assert approve_call.data.endswith(format(225_000_000, "064x"))
        assert deposit_call.data.endswith(format(150_000_000, "064x"))

    @pytest.mark.asyncio
    async def test_rejected_deposit_resumes_without_reapproval(
        self, orchestrator, gateway, wbtc, base_canonical
    ):
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.read_allowance.return_value = 225_000_000
        gateway.submit = AsyncMock(side_effect=["0xapprove", WalletRejection("User rejected the request.")])

        with pytest.raises(TransactionRejected):
            await orchestrator.execute(flow)

        assert flow.step(StepKind.APPROVAL).status == StepStatus.COMPLETED
        assert flow.step(StepKind.DEPOSIT).status == StepStatus.FAILED

        retried = await orchestrator.retry(flow)
        gateway.submit = _submit_refs("0xdeposit")
        result = await orchestrator.execute(retried)

        assert retried.attempt == 2
        assert gateway.submit.await_count == 1
        assert result.final_tx_ref == "0xdeposit"
        assert retried.step(StepKind.APPROVAL).tx_ref == "0xapprove"

    @pytest.mark.asyncio
    async def test_rejected_approval(self, orchestrator, gateway, wbtc, base_canonical):
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = AsyncMock(side_effect=WalletRejection("denied"))

        with pytest.raises(ApprovalRejected) as exc:
            await orchestrator.execute(flow)

        assert exc.value.context.step_id == "approval"
        assert flow.step(StepKind.APPROVAL).status == StepStatus.FAILED
        assert flow.step(StepKind.DEPOSIT).status == StepStatus.PENDING

    @pytest.mark.asyncio
    async def test_retry_drops_approval_when_allowance_granted_elsewhere(
        self, orchestrator, gateway, wbtc, base_canonical
    ):
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = AsyncMock(side_effect=WalletRejection("denied"))
        with pytest.raises(ApprovalRejected):
            await orchestrator.execute(flow)

        gateway.read_allowance.return_value = 10**9
        retried = await orchestrator.retry(flow)

        assert [step.kind for step in retried.steps] == [StepKind.DEPOSIT]

    @pytest.mark.asyncio
    async def test_retry_reapproves_when_completed_approval_falls_short(
        self, orchestrator, gateway, wbtc, base_canonical
    ):
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = _submit_refs("0xapprove")

        # The approval lands but the allowance is spent elsewhere before the deposit
        with pytest.raises(InsufficientAllowance):
            await orchestrator.execute(flow)
        assert flow.step(StepKind.APPROVAL).status == StepStatus.COMPLETED
        assert flow.step(StepKind.DEPOSIT).status == StepStatus.FAILED

        reads = gateway.read_allowance.await_count
        retried = await orchestrator.retry(flow)

        assert gateway.read_allowance.await_count > reads
        assert [(step.kind, step.status) for step in retried.steps] == [
            (StepKind.APPROVAL, StepStatus.PENDING),
            (StepKind.DEPOSIT, StepStatus.PENDING),
        ]
        assert retried.step(StepKind.APPROVAL).tx_ref is None

        gateway.read_allowance.return_value = 225_000_000
        gateway.submit = _submit_refs("0xapprove2", "0xdeposit")
        result = await orchestrator.execute(retried)

        assert result.final_tx_ref == "0xdeposit"
        assert retried.step(StepKind.APPROVAL).tx_ref == "0xapprove2"

    @pytest.mark.asyncio
    async def test_network_mismatch_leaves_step_pending(
        self, orchestrator, gateway, wallet, wbtc, base_canonical
    ):
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        wallet.current_network.return_value = OPTIMISM_SEPOLIA

        with pytest.raises(NetworkMismatch) as exc:
            await orchestrator.execute(flow)

        assert exc.value.required == BASE_SEPOLIA
        assert flow.steps[0].status == StepStatus.PENDING
        gateway.submit.assert_not_awaited()

        assert await orchestrator.switch_network(flow) == BASE_SEPOLIA
        wallet.request_network_switch.assert_awaited_once_with(BASE_SEPOLIA)

    @pytest.mark.asyncio
    async def test_network_checked_after_call_is_built(
        self, orchestrator, gateway, wallet, wbtc, base_canonical
    ):
        gateway.read_allowance.return_value = 10**9
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))

        async def allowance_then_switch(token, owner, spender):
            wallet.current_network.return_value = OPTIMISM_SEPOLIA
            return 10**9

        gateway.read_allowance.side_effect = allowance_then_switch

        with pytest.raises(NetworkMismatch) as exc:
            await orchestrator.execute(flow)

        assert exc.value.current == OPTIMISM_SEPOLIA
        assert flow.step(StepKind.DEPOSIT).status == StepStatus.PENDING
        gateway.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_allowance_rechecked_before_deposit(self, orchestrator, gateway, wbtc, base_canonical):
        gateway.read_allowance.return_value = 10**9
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.read_allowance.return_value = 0

        with pytest.raises(InsufficientAllowance):
            await orchestrator.execute(flow)

        assert flow.step(StepKind.DEPOSIT).status == StepStatus.FAILED
        gateway.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_revert_fails_step_and_retry_resubmits(self, orchestrator, gateway, wbtc, base_canonical):
        gateway.read_allowance.return_value = 10**9
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = _submit_refs("0xbad")
        gateway.wait_for_receipt.side_effect = lambda network_id, tx_ref: Receipt(tx_ref=tx_ref, success=False)

        with pytest.raises(TransactionReverted):
            await orchestrator.execute(flow)

        deposit = flow.step(StepKind.DEPOSIT)
        assert deposit.status == StepStatus.FAILED
        assert deposit.tx_ref == "0xbad"

        retried = await orchestrator.retry(flow)
        assert retried.step(StepKind.DEPOSIT).tx_ref is None

    @pytest.mark.asyncio
    async def test_receipt_timeout_then_retry_waits_on_same_transaction(
        self, orchestrator, gateway, wbtc, base_canonical
    ):
        gateway.read_allowance.return_value = 10**9
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = _submit_refs("0xslow")
        waited = []

        async def receipt(network_id, tx_ref):
            waited.append(tx_ref)
            if len(waited) == 1:
                await asyncio.sleep(10)
            return Receipt(tx_ref=tx_ref, success=True)

        gateway.wait_for_receipt.side_effect = receipt

        with pytest.raises(ReceiptTimeout) as exc:
            await orchestrator.execute(flow)
        assert exc.value.context.tx_ref == "0xslow"

        retried = await orchestrator.retry(flow)
        result = await orchestrator.execute(retried)

        assert gateway.submit.await_count == 1
        assert waited == ["0xslow", "0xslow"]
        assert result.final_tx_ref == "0xslow"

    @pytest.mark.asyncio
    async def test_cancel_during_receipt_wait_keeps_reference(
        self, orchestrator, gateway, wbtc, base_canonical
    ):
        gateway.read_allowance.return_value = 10**9
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = _submit_refs("0xpending")

        async def never(network_id, tx_ref):
            await asyncio.sleep(10)

        gateway.wait_for_receipt.side_effect = never
        orchestrator.receipt_timeout_seconds = 5

        task = asyncio.create_task(orchestrator.execute(flow))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        deposit = flow.step(StepKind.DEPOSIT)
        assert deposit.status == StepStatus.ACTIVE
        assert deposit.tx_ref == "0xpending"
        assert deposit.outcome_unknown

    @pytest.mark.asyncio
    async def test_failed_flow_must_be_retried(self, orchestrator, gateway, wbtc, base_canonical):
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = AsyncMock(side_effect=WalletRejection("denied"))
        with pytest.raises(ApprovalRejected):
            await orchestrator.execute(flow)

        with pytest.raises(FlowHalted) as exc:
            await orchestrator.execute(flow)

        assert exc.value.kind == ErrorKind.FLOW_HALTED
        assert exc.value.context.step_id == "approval"
        gateway.submit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_execute_is_rejected(self, orchestrator, gateway, wbtc, base_canonical):
        gateway.read_allowance.return_value = 10**9
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        release = asyncio.Event()

        async def receipt(network_id, tx_ref):
            await release.wait()
            return Receipt(tx_ref=tx_ref, success=True)

        gateway.submit = _submit_refs("0xdeposit")
        gateway.wait_for_receipt.side_effect = receipt
        orchestrator.receipt_timeout_seconds = 5

        first = asyncio.create_task(orchestrator.execute(flow))
        await asyncio.sleep(0.01)

        with pytest.raises(FlowInProgress):
            await orchestrator.execute(flow)

        release.set()
        result = await first
        assert result.final_tx_ref == "0xdeposit"
        assert orchestrator._locks == {}

    @pytest.mark.asyncio
    async def test_balance_refresh_callbacks(self, orchestrator, gateway, wbtc, base_canonical):
        gateway.read_allowance.return_value = 10**9
        flow = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = _submit_refs("0xdeposit")
        seen = []

        def broken(_flow):
            raise RuntimeError("ui gone")

        async def async_refresh(done_flow):
            seen.append(("async", done_flow.flow_id))

        orchestrator.register_balance_refresh(broken)
        orchestrator.register_balance_refresh(lambda done_flow: seen.append(("sync", done_flow.flow_id)))
        orchestrator.register_balance_refresh(async_refresh)

        await orchestrator.execute(flow)

        assert seen == [("sync", flow.flow_id), ("async", flow.flow_id)]

    @pytest.mark.asyncio
    async def test_flow_locks_released_after_execution(self, orchestrator, gateway, wbtc, base_canonical):
        gateway.read_allowance.return_value = 10**9
        done = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = _submit_refs("0xdeposit")
        await orchestrator.execute(done)
        assert orchestrator._locks == {}

        failing = await orchestrator.prepare(FlowRequest(wbtc, base_canonical, 150_000_000))
        gateway.submit = AsyncMock(side_effect=WalletRejection("denied"))
        with pytest.raises(TransactionRejected):
            await orchestrator.execute(failing)
        assert orchestrator._locks == {}


# =============================================================================
# Bridge execution
# =============================================================================

class TestBridgeExecution:

    @pytest.mark.asyncio
    async def test_send_then_destination_confirmation(
        self, orchestrator, gateway, base_canonical, op_canonical
    ):
        destination_reads = iter([500, 500, 500 + 10**8])

        async def balance(token, account):
            if token.network_id == OPTIMISM_SEPOLIA:
                return next(destination_reads)
            return 10**9

        gateway.read_balance.side_effect = balance
        gateway.quote_bridge_fee.return_value = 2 * 10**15
        gateway.submit = _submit_refs("0xsend")

        flow = await orchestrator.prepare(FlowRequest(base_canonical, op_canonical, 10**8))
        result = await orchestrator.execute(flow)

        assert flow.destination_baseline == 500
        assert flow.is_complete
        assert result.final_tx_ref == "0xsend"
        send_call = gateway.submit.await_args.args[0]
        assert send_call.value == 2 * 10**15

    @pytest.mark.asyncio
    async def test_destination_timeout(self, orchestrator, gateway, base_canonical, op_canonical):
        async def balance(token, account):
            return 500 if token.network_id == OPTIMISM_SEPOLIA else 10**9

        gateway.read_balance.side_effect = balance
        gateway.submit = _submit_refs("0xsend")
        orchestrator.destination_poll_seconds = 0.01

        flow = await orchestrator.prepare(FlowRequest(base_canonical, op_canonical, 10**8))
        with pytest.raises(DestinationConfirmationTimeout):
            await orchestrator.execute(flow)

        assert flow.step(StepKind.BRIDGE_SEND).status == StepStatus.COMPLETED
        assert flow.step(StepKind.DESTINATION_CONFIRMATION).status == StepStatus.FAILED

        retried = await orchestrator.retry(flow)
        assert retried.next_step.kind == StepKind.DESTINATION_CONFIRMATION
        assert retried.destination_baseline == 500


# =============================================================================
# Unwrap execution
# =============================================================================

class TestUnwrapExecution:

    @pytest.mark.asyncio
    async def test_queue_then_security_delay(self, orchestrator, gateway, base_canonical, wbtc):
        queued = RedemptionRequest(
            id=T0,
            owner=ACCOUNT,
            token=wbtc.address,
            canonical_amount=50_000_000,
            underlying_amount=50_000_000,
            request_time=T0,
        )
        gateway.read_redemption_requests.return_value = [queued]
        gateway.submit = _submit_refs("0xredeem")

        flow = await orchestrator.prepare(FlowRequest(base_canonical, wbtc, 50_000_000))
        result = await orchestrator.execute(flow)

        assert result.final_tx_ref == "0xredeem"
        assert flow.redemption_request_id == T0
        delay_step = flow.step(StepKind.SECURITY_DELAY)
        assert delay_step.status == StepStatus.ACTIVE

        assert not orchestrator.sync_security_delay(flow, [queued], T0 + DELAY // 2)
        assert delay_step.status == StepStatus.ACTIVE

        assert orchestrator.sync_security_delay(flow, [queued], T0 + DELAY)
        assert delay_step.status == StepStatus.COMPLETED
        assert flow.is_complete

    @pytest.mark.asyncio
    async def test_security_delay_waits_for_queue_step(self, orchestrator, base_canonical, wbtc):
        flow = await orchestrator.prepare(FlowRequest(base_canonical, wbtc, 50_000_000))

        assert not orchestrator.sync_security_delay(flow, [], T0 + DELAY)
        assert flow.step(StepKind.SECURITY_DELAY).status == StepStatus.PENDING
