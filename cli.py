#!/usr/bin/env python3
"""Simple CLI for inspecting wrap / bridge / redeem flows locally"""

import argparse
import asyncio
import time
from typing import Optional

from wrapflow.config import GWEI, settings
from wrapflow.core.approval import evaluate
from wrapflow.core.errors import OrchestrationError
from wrapflow.core.fees import FeeEstimator
from wrapflow.core.networks import NETWORKS, find_token, tokens_for_network
from wrapflow.core.redemption import analyze
from wrapflow.core.tokens import (
    OperationKind,
    classify,
    format_units,
    parse_units,
    to_canonical,
)
from wrapflow.logging_config import setup_logging
from wrapflow.providers import JsonRpcChainGateway, JsonRpcWalletProvider, get_price_oracle


def print_networks():
    """Pretty print supported networks and their tokens"""
    for network in NETWORKS.values():
        status = "✅" if network.is_deployed else "⏳"
        print(f"\n{status} {network.name} ({network.network_id}) endpoint {network.endpoint_id}")
        print("-" * 50)
        tokens = tokens_for_network(network.network_id)
        if not tokens:
            print("   No contracts deployed")
        for token in tokens:
            role = "canonical" if token.is_canonical else "wrappable"
            print(f"   {token.symbol:<8} {token.decimals:>2} decimals  {role:<10} {token.address}")


def _resolve(network_id: int, token_ref: str):
    token = find_token(network_id, token_ref)
    if token is None:
        raise ValueError(f"Unknown token {token_ref} on network {network_id}")
    return token


def cli_classify(from_network: int, from_token: str, to_network: int, to_token: str):
    source = _resolve(from_network, from_token)
    target = _resolve(to_network, to_token)
    operation = classify(source, target)
    icon = "❌" if operation == OperationKind.INVALID else "🔀"
    print(f"{icon} {source.symbol}@{source.network_id} → {target.symbol}@{target.network_id}: {operation.value}")


def cli_convert(amount: str, decimals: int):
    raw = parse_units(amount, decimals)
    canonical = to_canonical(raw, decimals)
    print(f"Input:     {amount} ({raw} units @ {decimals} decimals)")
    print(f"Canonical: {format_units(canonical.amount, 8)} ({canonical.amount} units @ 8 decimals)")
    if canonical.amount < settings.min_deposit_canonical:
        print(f"⚠️  Below minimum deposit of {settings.min_deposit_canonical} canonical units")


def cli_approval(allowance: str, amount: str, decimals: int, gas_gwei: Optional[float], symbol: str):
    state = evaluate(
        current_allowance=parse_units(allowance, decimals),
        required_amount=parse_units(amount, decimals),
        live_gas_price=int(gas_gwei * GWEI) if gas_gwei is not None else None,
        decimals=decimals,
        symbol=symbol,
    )
    print(f"\n🔐 {state.message}")
    print("=" * 50)
    for option in state.options:
        marker = "⭐" if option.recommended else "  "
        print(f"{marker} {option.label:<14} risk={option.security_risk.value:<6} gas={option.gas_estimate:,}")
        print(f"   {option.description}")


async def cli_fees(
    operation: str,
    amount: str,
    decimals: int,
    gas_gwei: float,
    needs_approval: bool,
    network_id: int,
):
    estimator = FeeEstimator()
    price = await get_price_oracle().native_asset_usd_price(network_id)
    breakdown = estimator.estimate(
        operation=OperationKind(operation),
        source_decimals=decimals,
        live_gas_price=int(gas_gwei * GWEI),
        needs_approval=needs_approval,
        amount=parse_units(amount, decimals),
        native_usd_price=price,
    )
    advice = estimator.recommend(breakdown)

    print(f"\n⛽ Fee breakdown: {operation} {amount}")
    print("=" * 50)
    print(f"Gas units:     {breakdown.total_gas_units:,} ({breakdown.gas_price_level.value})")
    print(f"Network fee:   {format_units(breakdown.network_fee, 18, 8)} ETH")
    if breakdown.protocol_fee:
        print(f"Protocol fee:  {format_units(breakdown.protocol_fee, decimals)}")
    if breakdown.bridge_fee:
        print(f"Bridge fee:    {format_units(breakdown.bridge_fee, 18, 8)} ETH")
    if breakdown.total_fee_usd is not None:
        print(f"Total (USD):   ${breakdown.total_fee_usd:,.2f}")
    print(f"Efficiency:    {breakdown.route_efficiency}/100")
    print(f"\n💡 {advice.recommendation.value}: {advice.reason}")
    for alt in breakdown.alternatives:
        print(f"   - {alt.name} (-{alt.savings_percent}%): {alt.description}")


async def cli_queue(address: str, network_id: int):
    print(f"🔍 Reading redemption requests for {address} on {network_id}...")
    gateway = JsonRpcChainGateway(JsonRpcWalletProvider())
    try:
        requests = await gateway.read_redemption_requests(network_id, address)
    except OrchestrationError as e:
        print(f"❌ Error: {e.message}")
        return
    finally:
        await gateway.close()

    result = analyze(requests, now=int(time.time()), owner=address)
    if not result.entries:
        print("No redemption requests")
        return
    for entry in result.entries:
        state = "✅ ready" if entry.is_ready else ("✔️  fulfilled" if entry.request.fulfilled else "⏳ pending")
        print(
            f"#{entry.request.id} {state} position={entry.position} "
            f"progress={entry.progress_percent:.1f}% remaining={entry.time_remaining}s"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="wrapflow CLI")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("networks", help="List supported networks and tokens")

    classify_parser = subparsers.add_parser("classify", help="Classify a token pair")
    classify_parser.add_argument("from_network", type=int)
    classify_parser.add_argument("from_token", help="Symbol or address")
    classify_parser.add_argument("to_network", type=int)
    classify_parser.add_argument("to_token", help="Symbol or address")

    convert_parser = subparsers.add_parser("convert", help="Convert an amount to canonical units")
    convert_parser.add_argument("amount", help="Human amount, e.g. 1.5")
    convert_parser.add_argument("decimals", type=int)

    approval_parser = subparsers.add_parser("approval", help="Evaluate approval strategies")
    approval_parser.add_argument("allowance", help="Current allowance (human units)")
    approval_parser.add_argument("amount", help="Required amount (human units)")
    approval_parser.add_argument("--decimals", type=int, default=8)
    approval_parser.add_argument("--gas-gwei", type=float, default=None)
    approval_parser.add_argument("--symbol", default="")

    fees_parser = subparsers.add_parser("fees", help="Estimate fees for an operation")
    fees_parser.add_argument("operation", choices=["wrap", "bridge", "unwrap"])
    fees_parser.add_argument("amount", help="Human amount")
    fees_parser.add_argument("--decimals", type=int, default=8)
    fees_parser.add_argument("--gas-gwei", type=float, default=10.0)
    fees_parser.add_argument("--approval", action="store_true", help="Include an approval transaction")
    fees_parser.add_argument("--network", type=int, default=settings.default_network_id)

    queue_parser = subparsers.add_parser("queue", help="Show redemption queue state for an address")
    queue_parser.add_argument("address")
    queue_parser.add_argument("network", nargs="?", type=int, default=settings.default_network_id)

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return

    command = args.command.lower()

    try:
        if command == "networks":
            print_networks()

        elif command == "classify":
            cli_classify(args.from_network, args.from_token, args.to_network, args.to_token)

        elif command == "convert":
            cli_convert(args.amount, args.decimals)

        elif command == "approval":
            cli_approval(args.allowance, args.amount, args.decimals, args.gas_gwei, args.symbol)

        elif command == "fees":
            await cli_fees(args.operation, args.amount, args.decimals, args.gas_gwei, args.approval, args.network)

        elif command == "queue":
            await cli_queue(args.address, args.network)

        else:
            print(f"❌ Unknown command: {command}")
            parser.print_help()
    except (OrchestrationError, ValueError) as e:
        print(f"❌ Error: {e}")


def _run():
    asyncio.run(main())


if __name__ == "__main__":
    _run()
