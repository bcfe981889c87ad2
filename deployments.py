#!/usr/bin/env python3
"""Deploy the hourly Beefy snapshot flow to Prefect v3.

The flow is pulled from remote code storage (a git URL by default), so the
work pool's runtime image does not need this repository baked in.
"""

from __future__ import annotations

import argparse
import os

from prefect import flow
from prefect.schedules import Cron

ENTRYPOINT = "src/pipelines/flows/beefy_snapshot.py:beefy_snapshot_flow"
DEPLOYMENT_NAME = "hourly-beefy-snapshot"
HOURLY = "0 * * * *"


def deploy_snapshot(
    *,
    source: str,
    ref: str | None,
    work_pool_name: str,
    timezone: str,
    top_n: int | None = None,
) -> None:
    if ref:
        from prefect.runner.storage import GitRepository

        storage = GitRepository(url=source, reference=ref)
    else:
        storage = source

    snapshot_flow = flow.from_source(source=storage, entrypoint=ENTRYPOINT)
    snapshot_flow.deploy(
        name=DEPLOYMENT_NAME,
        work_pool_name=work_pool_name,
        schedules=[Cron(HOURLY, timezone=timezone)],
        parameters={} if top_n is None else {"top_n": top_n},
    )
    print(f"Deployed {DEPLOYMENT_NAME} from {source}")


def main() -> None:
    default_source = os.getenv("PREFECT_DEPLOY_SOURCE")
    p = argparse.ArgumentParser(description=f"Deploy {DEPLOYMENT_NAME} to a Prefect work pool.")
    p.add_argument("--work-pool", required=True, help="Prefect work pool name")
    p.add_argument(
        "--source",
        default=default_source,
        required=default_source is None,
        help="Git URL of this repository (default: $PREFECT_DEPLOY_SOURCE)",
    )
    p.add_argument("--ref", default=None, help="Optional git branch, tag or commit")
    p.add_argument("--timezone", default="UTC", help="Schedule timezone (default: UTC)")
    p.add_argument("--top", type=int, default=None, help="Vaults to list by APY in each snapshot")
    args = p.parse_args()

    deploy_snapshot(
        source=args.source,
        ref=args.ref,
        work_pool_name=args.work_pool,
        timezone=args.timezone,
        top_n=args.top,
    )


if __name__ == "__main__":
    main()
