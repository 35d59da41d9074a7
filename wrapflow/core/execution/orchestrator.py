"""
Transaction Orchestrator

Turns a FlowRequest into an ordered list of steps and drives them one at a
time against the chain gateway and wallet:

- Wrap:   [approval?] -> deposit
- Bridge: send -> destination confirmation (polled, never signed)
- Unwrap: queue redemption -> security delay (time only)

Nothing is rolled back. A failed step halts the flow; retry() builds a new
attempt that keeps completed steps and resumes at the first unfinished one.
A submitted transaction whose outcome is unknown is waited on again, never
resubmitted.
"""

import asyncio
import inspect
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from ...config import settings
from ...logging_config import bind_flow_context
from ..approval import ApprovalPolicy, ApprovalStrategy, evaluate
from ..errors import (
    ApprovalRejected,
    BelowMinimumAmount,
    DestinationConfirmationTimeout,
    ErrorContext,
    FlowHalted,
    FlowInProgress,
    GatewayError,
    InsufficientAllowance,
    InsufficientBalance,
    InsufficientReserve,
    InvalidAmount,
    InvalidApprovalStrategy,
    NetworkMismatch,
    NoOperationForPair,
    OrchestrationError,
    ReceiptTimeout,
    SuggestedAction,
    TransactionRejected,
    TransactionReverted,
    is_user_rejection,
)
from ..fees import FeeEstimator, get_fee_estimator
from ..networks import require_network
from ..redemption.analytics import is_ready
from ..redemption.models import RedemptionRequest
from ..tokens.classifier import classify
from ..tokens.models import OperationKind
from ..tokens.normalizer import from_canonical, to_canonical
from .models import (
    FlowRequest,
    FlowResult,
    PreparedCall,
    StepKind,
    StepStatus,
    TransactionFlow,
    TransactionStep,
)
from .tx_builder import CallBuilder

logger = logging.getLogger(__name__)


BalanceRefreshCallback = Callable[[TransactionFlow], Union[None, Awaitable[None]]]

# Rough wall-clock duration per step, for progress display
STEP_ESTIMATED_SECONDS: Dict[StepKind, int] = {
    StepKind.APPROVAL: 30,
    StepKind.DEPOSIT: 45,
    StepKind.BRIDGE_SEND: 60,
    StepKind.DESTINATION_CONFIRMATION: 300,
    StepKind.QUEUE_REDEMPTION: 60,
}


class TransactionOrchestrator:
    """
    Prepares and executes transaction flows.

    Usage:
        orchestrator = TransactionOrchestrator(gateway, wallet)
        flow = await orchestrator.prepare(FlowRequest(source, target, amount))
        result = await orchestrator.execute(flow)
    """

    def __init__(
        self,
        gateway,
        wallet,
        approval_policy: Optional[ApprovalPolicy] = None,
        fee_estimator: Optional[FeeEstimator] = None,
        min_deposit_canonical: Optional[int] = None,
        redemption_delay_seconds: Optional[int] = None,
        receipt_timeout_seconds: Optional[float] = None,
        destination_timeout_seconds: Optional[float] = None,
        destination_poll_seconds: Optional[float] = None,
    ):
        self.gateway = gateway
        self.wallet = wallet
        self.approval_policy = approval_policy if approval_policy is not None else ApprovalPolicy.from_settings()
        self.fee_estimator = fee_estimator if fee_estimator is not None else get_fee_estimator()
        self.min_deposit_canonical = (
            settings.min_deposit_canonical if min_deposit_canonical is None else min_deposit_canonical
        )
        self.redemption_delay_seconds = (
            settings.redemption_delay_seconds if redemption_delay_seconds is None else redemption_delay_seconds
        )
        self.receipt_timeout_seconds = (
            settings.receipt_timeout_seconds if receipt_timeout_seconds is None else receipt_timeout_seconds
        )
        self.destination_timeout_seconds = (
            settings.destination_timeout_seconds
            if destination_timeout_seconds is None
            else destination_timeout_seconds
        )
        self.destination_poll_seconds = (
            settings.destination_poll_seconds if destination_poll_seconds is None else destination_poll_seconds
        )

        self._locks: Dict[str, asyncio.Lock] = {}
        self._refresh_callbacks: List[BalanceRefreshCallback] = []

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def register_balance_refresh(self, callback: BalanceRefreshCallback) -> None:
        """Register a callback run after a flow's last executing step succeeds."""
        self._refresh_callbacks.append(callback)

    async def _notify_balance_refresh(self, flow: TransactionFlow) -> None:
        for callback in self._refresh_callbacks:
            try:
                result = callback(flow)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Balance refresh callback error: {e}")

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------

    async def prepare(self, request: FlowRequest) -> TransactionFlow:
        """
        Validate a request and build its step list. No chain writes happen here.

        Raises:
            InvalidAmount, InvalidApprovalStrategy, NoOperationForPair,
            InsufficientBalance, BelowMinimumAmount, InsufficientReserve
        """
        amount = request.amount
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(f"Amount must be a positive integer, got {amount!r}")
        self._requested_strategy(request)

        operation = classify(request.source, request.target)
        if operation == OperationKind.INVALID:
            raise NoOperationForPair(
                f"No operation moves {request.source.symbol} on {request.source.network_id} "
                f"to {request.target.symbol} on {request.target.network_id}"
            )

        account = request.account or await self.wallet.current_account()
        if not account:
            raise GatewayError(
                "No wallet account connected",
                ErrorContext(suggested_action=SuggestedAction.NONE),
            )

        balance = await self._read(self.gateway.read_balance(request.source, account), "balance")
        if balance < amount:
            raise InsufficientBalance(required=amount, available=balance, symbol=request.source.symbol)

        flow = TransactionFlow(
            flow_id=TransactionFlow.generate_flow_id(),
            request=request,
            operation=operation,
            account=account,
            canonical_amount=to_canonical(amount, request.source.decimals).amount,
        )

        if operation == OperationKind.WRAP:
            await self._prepare_wrap(flow)
        elif operation == OperationKind.UNWRAP:
            await self._prepare_unwrap(flow)
        else:
            await self._prepare_bridge(flow)

        logger.info(
            "Prepared %s flow %s with steps %s",
            operation.value,
            flow.flow_id,
            [step.kind.value for step in flow.steps],
        )
        return flow

    async def _prepare_wrap(self, flow: TransactionFlow) -> None:
        request = flow.request
        if flow.canonical_amount < self.min_deposit_canonical:
            raise BelowMinimumAmount(flow.canonical_amount, self.min_deposit_canonical)

        network = require_network(request.source.network_id)
        approval_step = await self._approval_step_if_required(flow)
        if approval_step is not None:
            flow.steps.append(approval_step)

        flow.steps.append(
            TransactionStep(
                id="deposit",
                kind=StepKind.DEPOSIT,
                label=f"Wrap {request.source.symbol}",
                description=f"Deposit {request.source.symbol} into the {network.name} wrapper",
                network_id=request.source.network_id,
                estimated_seconds=STEP_ESTIMATED_SECONDS[StepKind.DEPOSIT],
            )
        )

    async def _approval_step_if_required(self, flow: TransactionFlow) -> Optional[TransactionStep]:
        """Read the allowance and build an approval step only when it falls short."""
        request = flow.request
        network = require_network(request.source.network_id)

        allowance = await self._read(
            self.gateway.read_allowance(request.source, flow.account, network.wrapper),
            "allowance",
        )
        gas_price = await self._optional_gas_price(request.source.network_id)
        state = evaluate(
            current_allowance=allowance,
            required_amount=request.amount,
            live_gas_price=gas_price,
            decimals=request.source.decimals,
            symbol=request.source.symbol,
            policy=self.approval_policy,
        )
        if not state.is_required:
            return None

        strategy = self._requested_strategy(request) or state.recommended_strategy
        option = state.option_for(strategy)
        flow.approval_amount = option.amount
        return TransactionStep(
            id="approval",
            kind=StepKind.APPROVAL,
            label=f"Approve {request.source.symbol}",
            description=option.description,
            network_id=request.source.network_id,
            estimated_seconds=STEP_ESTIMATED_SECONDS[StepKind.APPROVAL],
        )

    @staticmethod
    def _requested_strategy(request: FlowRequest) -> Optional[ApprovalStrategy]:
        if not request.approval_strategy:
            return None
        try:
            return ApprovalStrategy(request.approval_strategy)
        except ValueError:
            raise InvalidApprovalStrategy(
                f"Unknown approval strategy {request.approval_strategy!r}; "
                f"expected one of {[s.value for s in ApprovalStrategy]}"
            ) from None

    async def _prepare_unwrap(self, flow: TransactionFlow) -> None:
        request = flow.request
        owed = from_canonical(flow.canonical_amount, request.target.decimals).amount
        reserve = await self._read(self.gateway.read_available_reserve(request.target), "reserve")
        if owed > reserve:
            raise InsufficientReserve(owed=owed, reserve=reserve, symbol=request.target.symbol)

        flow.steps.append(
            TransactionStep(
                id="queue_redemption",
                kind=StepKind.QUEUE_REDEMPTION,
                label=f"Request {request.target.symbol} redemption",
                description=f"Burn {request.source.symbol} and queue the redemption",
                network_id=request.source.network_id,
                estimated_seconds=STEP_ESTIMATED_SECONDS[StepKind.QUEUE_REDEMPTION],
            )
        )
        flow.steps.append(
            TransactionStep(
                id="security_delay",
                kind=StepKind.SECURITY_DELAY,
                label="Security delay",
                description="Redemption becomes ready once the security delay has passed",
                network_id=None,
                estimated_seconds=self.redemption_delay_seconds,
            )
        )

    async def _prepare_bridge(self, flow: TransactionFlow) -> None:
        request = flow.request
        source_network = require_network(request.source.network_id)
        target_network = require_network(request.target.network_id)

        flow.bridge_fee = await self.quote_bridge_fee(flow)
        flow.steps.append(
            TransactionStep(
                id="bridge_send",
                kind=StepKind.BRIDGE_SEND,
                label=f"Bridge to {target_network.name}",
                description=f"Send {request.source.symbol} from {source_network.name} to {target_network.name}",
                network_id=request.source.network_id,
                estimated_seconds=STEP_ESTIMATED_SECONDS[StepKind.BRIDGE_SEND],
            )
        )
        flow.steps.append(
            TransactionStep(
                id="destination_confirmation",
                kind=StepKind.DESTINATION_CONFIRMATION,
                label=f"Confirm arrival on {target_network.name}",
                description="Wait for the bridged amount to arrive",
                network_id=request.target.network_id,
                estimated_seconds=STEP_ESTIMATED_SECONDS[StepKind.DESTINATION_CONFIRMATION],
            )
        )

    async def quote_bridge_fee(self, flow: TransactionFlow) -> int:
        """Quoted messaging fee, floored at the configured minimum; the minimum when quoting fails."""
        request = flow.request
        quoted = None
        try:
            quoted = await self.gateway.quote_bridge_fee(
                request.source,
                request.target.network_id,
                flow.account,
                flow.canonical_amount,
            )
        except Exception as e:
            logger.warning(f"Bridge fee quote failed, using minimum fee: {e}")
        return self.fee_estimator.bridge_fee(OperationKind.BRIDGE, quoted)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, flow: TransactionFlow) -> FlowResult:
        """
        Run the flow's steps strictly in order.

        Returns once the last executing step completes. An unwrap returns
        with its security-delay step active; sync_security_delay() completes it.

        Raises:
            FlowInProgress: The same flow is already executing
            FlowHalted: A step has failed; retry() must build the next attempt
            NetworkMismatch: The wallet is on the wrong network (step stays pending)
            OrchestrationError: Any step failure; the step is marked failed
        """
        lock = self._locks.setdefault(flow.flow_id, asyncio.Lock())
        if lock.locked():
            raise FlowInProgress(f"Flow {flow.flow_id} is already executing")

        try:
            async with lock:
                return await self._execute_steps(flow)
        finally:
            if not lock.locked() and self._locks.get(flow.flow_id) is lock:
                del self._locks[flow.flow_id]

    async def _execute_steps(self, flow: TransactionFlow) -> FlowResult:
        bind_flow_context(flow.flow_id, flow.operation.value)
        failed = flow.failed_step
        if failed is not None:
            raise FlowHalted(
                f"Flow {flow.flow_id} has failed step {failed.id}; call retry() first",
                ErrorContext(suggested_action=SuggestedAction.RETRY, step_id=failed.id),
            )

        for step in flow.steps:
            if step.status == StepStatus.COMPLETED:
                continue
            if step.kind == StepKind.SECURITY_DELAY:
                if step.status == StepStatus.PENDING:
                    step.activate()
                    logger.info(f"Step {step.id} waiting for redemption delay")
                break
            if step.kind == StepKind.DESTINATION_CONFIRMATION:
                await self._confirm_destination(flow, step)
            else:
                await self._run_submitting_step(flow, step)

        await self._notify_balance_refresh(flow)
        return FlowResult(
            flow_id=flow.flow_id,
            operation=flow.operation,
            final_tx_ref=flow.final_tx_ref,
            steps=flow.steps,
        )

    async def _run_submitting_step(self, flow: TransactionFlow, step: TransactionStep) -> None:
        if step.tx_ref is not None:
            # Submitted by an earlier attempt; only the receipt is outstanding
            if step.status == StepStatus.PENDING:
                step.activate()
            logger.info(f"Step {step.id} resuming wait on {step.tx_ref}")
            await self._await_receipt(flow, step)
            return

        # Building may await chain reads; the wallet network is checked after them
        call = await self._build_call(flow, step)
        await self._ensure_network(step)
        if step.status == StepStatus.PENDING:
            step.activate()
        logger.info(f"Step {step.id} active on network {step.network_id}")

        try:
            tx_ref = await self.gateway.submit(call)
        except OrchestrationError as e:
            self._fail(step, e)
            raise
        except Exception as e:
            if is_user_rejection(e):
                error_cls = ApprovalRejected if step.kind == StepKind.APPROVAL else TransactionRejected
                error = error_cls(
                    f"{step.label} was rejected in the wallet",
                    ErrorContext(suggested_action=SuggestedAction.RETRY, step_id=step.id),
                )
            else:
                error = GatewayError(
                    f"Failed to submit {step.label}: {e}",
                    ErrorContext(suggested_action=SuggestedAction.RETRY, step_id=step.id),
                )
            self._fail(step, error)
            raise error from e

        step.tx_ref = tx_ref
        logger.info(f"Step {step.id} submitted: {tx_ref}")
        await self._await_receipt(flow, step)

    async def _ensure_network(self, step: TransactionStep) -> None:
        current = await self.wallet.current_network()
        if current != step.network_id:
            logger.info(f"Step {step.id} needs network {step.network_id}, wallet is on {current}")
            raise NetworkMismatch(required=step.network_id, current=current, step_id=step.id)

    async def _build_call(self, flow: TransactionFlow, step: TransactionStep) -> PreparedCall:
        request = flow.request
        network = require_network(request.source.network_id)

        if step.kind == StepKind.APPROVAL:
            return CallBuilder.build_approve(
                network_id=network.network_id,
                owner_address=flow.account,
                token_address=request.source.address,
                spender_address=network.wrapper,
                amount=flow.approval_amount if flow.approval_amount is not None else request.amount,
                description=step.description,
            )

        if step.kind == StepKind.DEPOSIT:
            await self._recheck_allowance(flow, step)
            return CallBuilder.build_deposit(
                network_id=network.network_id,
                owner_address=flow.account,
                wrapper_address=network.wrapper,
                token_address=request.source.address,
                canonical_amount=flow.canonical_amount,
                description=step.description,
            )

        if step.kind == StepKind.QUEUE_REDEMPTION:
            return CallBuilder.build_redeem(
                network_id=network.network_id,
                owner_address=flow.account,
                queue_address=network.redemption_queue,
                token_address=request.target.address,
                canonical_amount=flow.canonical_amount,
                description=step.description,
            )

        if step.kind == StepKind.BRIDGE_SEND:
            target_network = require_network(request.target.network_id)
            if flow.destination_baseline is None:
                flow.destination_baseline = await self._read_for_step(
                    step, self.gateway.read_balance(request.target, flow.account)
                )
            return CallBuilder.build_bridge_send(
                network_id=network.network_id,
                owner_address=flow.account,
                oft_address=request.source.address,
                dst_eid=target_network.endpoint_id,
                recipient=flow.account,
                amount=flow.canonical_amount,
                native_fee=flow.bridge_fee if flow.bridge_fee is not None else await self.quote_bridge_fee(flow),
                description=step.description,
            )

        raise ValueError(f"Step kind {step.kind.value} does not submit a transaction")

    async def _recheck_allowance(self, flow: TransactionFlow, step: TransactionStep) -> None:
        """The allowance may have changed since prepare(); read it again right before depositing."""
        request = flow.request
        network = require_network(request.source.network_id)
        allowance = await self._read_for_step(
            step, self.gateway.read_allowance(request.source, flow.account, network.wrapper)
        )
        state = evaluate(
            current_allowance=allowance,
            required_amount=request.amount,
            live_gas_price=None,
            decimals=request.source.decimals,
            symbol=request.source.symbol,
            policy=self.approval_policy,
        )
        if state.is_required:
            error = InsufficientAllowance(
                f"Allowance {allowance} is below the {request.amount} needed for the deposit",
                ErrorContext(
                    suggested_action=SuggestedAction.RETRY,
                    step_id=step.id,
                    network_id=step.network_id,
                    details={"allowance": str(allowance), "required": str(request.amount)},
                ),
            )
            self._fail(step, error)
            raise error

    async def _await_receipt(self, flow: TransactionFlow, step: TransactionStep) -> None:
        try:
            receipt = await asyncio.wait_for(
                self.gateway.wait_for_receipt(step.network_id, step.tx_ref),
                timeout=self.receipt_timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = ReceiptTimeout(
                f"No receipt for {step.tx_ref} after {self.receipt_timeout_seconds}s",
                ErrorContext(
                    suggested_action=SuggestedAction.RETRY,
                    step_id=step.id,
                    tx_ref=step.tx_ref,
                    network_id=step.network_id,
                ),
            )
            self._fail(step, error)
            raise error
        except asyncio.CancelledError:
            # Step stays active with its reference; outcome unknown
            logger.info(f"Stopped waiting for {step.tx_ref}; outcome unknown")
            raise
        except OrchestrationError as e:
            self._fail(step, e)
            raise
        except Exception as e:
            error = GatewayError(
                f"Failed waiting for {step.tx_ref}: {e}",
                ErrorContext(suggested_action=SuggestedAction.RETRY, step_id=step.id, tx_ref=step.tx_ref),
            )
            self._fail(step, error)
            raise error from e

        if not receipt.success:
            error = TransactionReverted(
                f"{step.label} reverted ({step.tx_ref})",
                ErrorContext(
                    suggested_action=SuggestedAction.RETRY,
                    step_id=step.id,
                    tx_ref=step.tx_ref,
                    network_id=step.network_id,
                ),
            )
            self._fail(step, error)
            raise error

        step.complete()
        logger.info(f"Step {step.id} completed: {step.tx_ref}")

        if step.kind == StepKind.QUEUE_REDEMPTION:
            await self._link_redemption_request(flow)

    async def _confirm_destination(self, flow: TransactionFlow, step: TransactionStep) -> None:
        request = flow.request
        if step.status == StepStatus.PENDING:
            step.activate()

        if flow.destination_baseline is None:
            logger.warning("No destination baseline recorded; using current balance")
            flow.destination_baseline = await self._read_for_step(
                step, self.gateway.read_balance(request.target, flow.account)
            )
        expected = flow.destination_baseline + flow.canonical_amount

        async def poll() -> int:
            while True:
                try:
                    balance = await self.gateway.read_balance(request.target, flow.account)
                    if balance >= expected:
                        return balance
                except Exception as e:
                    logger.warning(f"Destination balance read failed: {e}")
                await asyncio.sleep(self.destination_poll_seconds)

        try:
            balance = await asyncio.wait_for(poll(), timeout=self.destination_timeout_seconds)
        except asyncio.TimeoutError:
            error = DestinationConfirmationTimeout(
                f"Bridged amount did not arrive on network {step.network_id} "
                f"within {self.destination_timeout_seconds}s",
                ErrorContext(
                    suggested_action=SuggestedAction.RETRY,
                    step_id=step.id,
                    network_id=step.network_id,
                    details={"expected": str(expected)},
                ),
            )
            self._fail(step, error)
            raise error

        step.complete()
        logger.info(f"Step {step.id} completed: destination balance {balance}")

    async def _link_redemption_request(self, flow: TransactionFlow) -> None:
        try:
            requests = await self.gateway.read_redemption_requests(
                flow.request.source.network_id, flow.account
            )
        except Exception as e:
            logger.warning(f"Could not read redemption requests after queueing: {e}")
            return
        request = self._newest_request(flow, requests)
        if request is not None:
            flow.redemption_request_id = request.id
            logger.info(f"Flow {flow.flow_id} linked to redemption request {request.id}")

    @staticmethod
    def _newest_request(
        flow: TransactionFlow,
        requests: Iterable[RedemptionRequest],
    ) -> Optional[RedemptionRequest]:
        token = flow.request.target.address.lower()
        candidates = [
            r for r in requests
            if r.token.lower() == token and r.owner.lower() == flow.account.lower()
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.sort_key)

    # ------------------------------------------------------------------
    # After execution
    # ------------------------------------------------------------------

    def sync_security_delay(
        self,
        flow: TransactionFlow,
        requests: Iterable[RedemptionRequest],
        now: int,
    ) -> bool:
        """
        Complete the security-delay step once its redemption request is ready
        (or already fulfilled). Safe to call on every redemption poll.

        Returns:
            True when the step is completed
        """
        step = flow.step(StepKind.SECURITY_DELAY)
        if step is None:
            return False
        if step.status == StepStatus.COMPLETED:
            return True

        queue_step = flow.step(StepKind.QUEUE_REDEMPTION)
        if queue_step is None or queue_step.status != StepStatus.COMPLETED:
            return False

        requests = list(requests)
        if flow.redemption_request_id is None:
            linked = self._newest_request(flow, requests)
            if linked is None:
                return False
            flow.redemption_request_id = linked.id

        owner = flow.account.lower()
        request = next(
            (r for r in requests if r.id == flow.redemption_request_id and r.owner.lower() == owner),
            None,
        )
        if request is None:
            return False
        if not (request.fulfilled or is_ready(request, now, self.redemption_delay_seconds)):
            return False

        if step.status == StepStatus.PENDING:
            step.activate()
        step.complete()
        logger.info(f"Redemption request {request.id} ready; flow {flow.flow_id} complete")
        return True

    async def switch_network(self, flow: TransactionFlow) -> Optional[int]:
        """Ask the wallet to switch to the network the next step needs."""
        step = flow.next_step
        if step is None or step.network_id is None:
            return None
        current = await self.wallet.current_network()
        if current != step.network_id:
            logger.info(f"Requesting wallet switch from {current} to {step.network_id}")
            await self.wallet.request_network_switch(step.network_id)
        return step.network_id

    async def retry(self, flow: TransactionFlow) -> TransactionFlow:
        """
        Build the next attempt of a halted flow.

        Completed steps are kept as-is. Steps with a submitted but unconfirmed
        transaction keep their reference so execution waits on it instead of
        submitting again. An approval step is only present if the allowance,
        read now, still falls short.
        """
        steps: List[TransactionStep] = []
        for step in flow.steps:
            if step.status == StepStatus.COMPLETED:
                steps.append(replace(step))
            else:
                steps.append(
                    TransactionStep(
                        id=step.id,
                        kind=step.kind,
                        label=step.label,
                        description=step.description,
                        network_id=step.network_id,
                        tx_ref=step.tx_ref if step.outcome_unknown else None,
                        estimated_seconds=step.estimated_seconds,
                    )
                )

        next_flow = replace(flow, steps=steps, attempt=flow.attempt + 1)

        if flow.operation == OperationKind.WRAP:
            await self._recheck_approval_step(next_flow)

        logger.info(
            "Retrying flow %s (attempt %s) from step %s",
            next_flow.flow_id,
            next_flow.attempt,
            next_flow.next_step.id if next_flow.next_step else None,
        )
        return next_flow

    async def _recheck_approval_step(self, flow: TransactionFlow) -> None:
        """
        Re-read the allowance for an unsubmitted deposit.

        A completed approval can still leave the allowance short (spent or
        revoked elsewhere), so it is replaced by a fresh pending approval in
        that case. An approval with an unconfirmed transaction is waited on.
        """
        deposit = flow.step(StepKind.DEPOSIT)
        approval = flow.step(StepKind.APPROVAL)
        if deposit is None or deposit.status == StepStatus.COMPLETED or deposit.tx_ref is not None:
            return
        if approval is not None and approval.outcome_unknown:
            return

        fresh = await self._approval_step_if_required(flow)
        if fresh is None:
            if approval is not None and approval.status != StepStatus.COMPLETED:
                flow.steps.remove(approval)
            return

        if approval is not None:
            flow.steps.remove(approval)
        flow.steps.insert(flow.steps.index(deposit), fresh)
        logger.info(f"Flow {flow.flow_id} needs a new approval before the deposit")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _fail(step: TransactionStep, error: OrchestrationError) -> None:
        if error.context.step_id is None:
            error.context.step_id = step.id
        if step.status == StepStatus.PENDING:
            step.activate()
        step.fail(error.kind.value, error.message)
        logger.info(f"Step {step.id} failed: {error.kind.value}: {error.message}")

    async def _read(self, awaitable: Awaitable[Any], what: str) -> Any:
        try:
            return await awaitable
        except OrchestrationError:
            raise
        except Exception as e:
            raise GatewayError(f"Failed to read {what}: {e}") from e

    async def _read_for_step(self, step: TransactionStep, awaitable: Awaitable[Any]) -> Any:
        """A read made on behalf of a step; failure fails the step."""
        try:
            return await self._read(awaitable, step.label)
        except GatewayError as e:
            if not step.is_terminal:
                self._fail(step, e)
            raise

    async def _optional_gas_price(self, network_id: int) -> Optional[int]:
        try:
            return await self.gateway.read_gas_price(network_id)
        except Exception as e:
            logger.warning(f"Gas price unavailable for approval recommendation: {e}")
            return None
