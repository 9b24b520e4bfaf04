"""
Re-derive the capacity plan from the current configuration and apply it.

Run after changing MAX_USERS (or another scaling knob) in env.yaml or the
environment:

    python rescale.py

Exits with status 1 when the configuration does not validate.
"""

import asyncio
import logging
import sys

from sqlmodel import SQLModel

from config import ApplicationConfig
from crawlgate.app.use_cases.scaling import ApplyScalingUseCase, ScalingChanges
from crawlgate.container import build_governance
from crawlgate.depends import AsyncSessionLocal, engine
from crawlgate.domain.errors import ConfigurationError


async def rescale() -> int:
    try:
        governance = build_governance(ApplicationConfig, AsyncSessionLocal)
    except ConfigurationError as e:
        print("Configuration validation failed:")
        for error in e.errors:
            print(f"  - {error}")
        return 1

    config = governance.planner.config
    allocation = governance.planner.system_allocation()
    print("Current scaling configuration:")
    print(f"  Max Users: {config.max_users}")
    print(f"  Queue Size Per User: {config.queue_size_per_user}")
    print(f"  Workers Per User: {config.workers_per_user}")
    print(f"  Concurrency Per Worker: {config.concurrency_per_worker}")
    print(f"  Memory Per Worker: {config.memory_per_worker_mb}MB")
    print(f"  CPU Per Worker: {config.cpu_per_worker} cores")
    print("\nSystem resource allocation:")
    print(f"  Total Workers: {allocation.total_workers}")
    print(f"  Total Queue Size: {allocation.total_queue_size}")
    print(f"  Memory Allocation: {allocation.memory_allocation_mb}MB")
    print(f"  CPU Allocation: {allocation.cpu_allocation} cores")
    print(f"  Recommended Instances: {allocation.recommended_instances}")

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    use_case = ApplyScalingUseCase(
        governance.planner, governance.registry, governance.orchestrator, governance.use_planner
    )
    try:
        result = await use_case.execute(ScalingChanges())
    finally:
        await governance.stop()
        await engine.dispose()

    if result.is_err():
        print(f"Scaling update failed: {result.error.message}")
        return 1

    report = result.value
    print("\nUpdating tenant limits...")
    print(f"  Updated {report.tenants_updated} tenants")
    for error in report.errors:
        print(f"    - {error}")

    if report.stale_queues:
        print("\nQueues needing recreation:")
        for name in report.stale_queues:
            print(f"  - {name}")

    print("\nGenerated environment configuration:")
    for key, value in report.environment.items():
        print(f"  {key}={value}")

    if report.recommendations:
        print("\nRecommendations:")
        for note in report.recommendations:
            print(f"  - {note}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=ApplicationConfig.LOG_LEVEL)
    sys.exit(asyncio.run(rescale()))
