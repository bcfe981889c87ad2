import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run the Prefect beefy-snapshot flow locally")
    p.add_argument(
        "--use-prefect-api",
        action="store_true",
        help="Use PREFECT_API_URL/PREFECT_API_KEY from the environment if set. Default is local/ephemeral execution.",
    )
    p.add_argument(
        "--top",
        type=int,
        default=None,
        help="Number of vaults to list by APY (default: SNAPSHOT_TOP_N setting).",
    )
    return p.parse_args()


def _maybe_set_ephemeral_prefect_env(use_prefect_api: bool) -> None:
    if use_prefect_api:
        return
    # Ensure local execution doesn't depend on Prefect server/cloud.
    os.environ.pop("PREFECT_API_URL", None)
    os.environ.pop("PREFECT_API_KEY", None)
    os.environ.setdefault("PREFECT_SERVER_ALLOW_EPHEMERAL_MODE", "true")


async def _run(top_n: int | None) -> int:
    from src.pipelines.flows.beefy_snapshot import beefy_snapshot_flow

    summary = await beefy_snapshot_flow(top_n=top_n)
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


def main() -> int:
    args = _parse_args()

    # Ensure `import src...` works when running from the repo root.
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

    _maybe_set_ephemeral_prefect_env(args.use_prefect_api)

    from src.core.config import settings

    logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)
    return asyncio.run(_run(top_n=args.top))


if __name__ == "__main__":
    raise SystemExit(main())
