#!/usr/bin/env python3
"""
Withdrawal routing simulation for the MetaVault allocation engine.

Builds a vault over two asynchronous in-memory targets with different exit
costs, allocates the deposit across them, utilizes part of each target and
then walks a user withdrawal through the full lifecycle:

1. request_withdraw pays what idle and target liquidity allow
2. the remainder is requested from the cheapest target
3. the target frees assets, the claim sweep collects them
4. the user claims the withdraw key

Usage:
    python scripts/simulate_withdrawal_routing.py --deposit 5000 --withdraw 4000
    python scripts/simulate_withdrawal_routing.py --config config.yaml --log-level DEBUG
"""

import argparse
import asyncio
import sys
from decimal import Decimal

from metavault.core.config import get_config
from metavault.core.events import RecordingEventHandler
from metavault.core.exceptions import MetaVaultError
from metavault.core.logging import get_logger, setup_logging
from metavault.simulation import AsyncTargetVault, InMemoryAsset
from metavault.vault import MetaVault, TargetRegistry

logger = get_logger(__name__)

USER = "user"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate MetaVault withdrawal routing")
    parser.add_argument("--config", help="YAML or JSON config file")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--deposit", type=Decimal, default=Decimal("5000"))
    parser.add_argument("--withdraw", type=Decimal, default=Decimal("4000"))
    parser.add_argument("--cheap-exit-bps", type=Decimal, default=Decimal("100"))
    parser.add_argument("--dear-exit-bps", type=Decimal, default=Decimal("200"))
    parser.add_argument(
        "--utilization",
        type=Decimal,
        default=Decimal("1"),
        help="Fraction of each allocation moved into the target strategy",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> None:
    config = get_config(args.config)
    asset = InMemoryAsset("USDC")

    cheap = AsyncTargetVault("target-a", asset, exit_cost_bps=args.cheap_exit_bps)
    dear = AsyncTargetVault("target-b", asset, exit_cost_bps=args.dear_exit_bps)
    registry = TargetRegistry(config.allocation.max_targets)
    registry.approve(cheap)
    registry.approve(dear)

    vault = MetaVault.from_config(asset, config, registry=registry)
    recorder = RecordingEventHandler()
    vault.events.subscribe_all(recorder)

    asset.mint(USER, args.deposit)
    await vault.deposit(args.deposit, USER, USER)

    split = (args.deposit * Decimal("0.3")).quantize(config.allocation.asset_quantum)
    await vault.allocate([cheap, dear], [split, (split / 2).quantize(config.allocation.asset_quantum)])
    for target in (cheap, dear):
        utilized = (await target.idle_assets() * args.utilization).quantize(
            config.allocation.asset_quantum
        )
        await target.utilize(utilized)

    key = await vault.request_withdraw(args.withdraw, USER, USER)
    logger.info(
        "Withdrawal requested",
        paid=str(await asset.balance_of(USER)),
        owed=str(vault.owed_to_users),
        key=key,
    )

    for target in vault.claimable_targets():
        pending = sum(
            (vault.ledger.requested_assets(target, k) for k in vault.withdraw_keys_for(target)),
            Decimal("0"),
        )
        await target.deutilize(pending)

    result = await vault.claim_allocations()
    logger.info("Claim sweep", claimed=str(result.claimed_assets), resolved=result.resolved_count)

    if await vault.is_claimable(key):
        await vault.claim(key)

    print("\nEvents")
    print("------")
    for event in recorder.events:
        print(f"{event.event_type.value:32} {event.data}")

    print("\nFinal state")
    print("-----------")
    print(f"user assets:       {await asset.balance_of(USER)}")
    print(f"vault total:       {await vault.total_assets()}")
    print(f"vault idle:        {await vault.idle_assets()}")
    print(f"allocated targets: {[t.address for t in vault.allocated_targets()]}")
    print(f"open obligations:  {vault.ledger.obligation_count()}")


def main() -> int:
    args = parse_args()
    config = get_config(args.config)
    setup_logging(
        environment=config.logging.environment,
        log_level=args.log_level or config.logging.level,
        log_file=config.logging.file,
    )

    try:
        asyncio.run(run(args))
    except MetaVaultError as e:
        logger.error("Simulation failed", error=str(e), error_code=e.error_code)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
