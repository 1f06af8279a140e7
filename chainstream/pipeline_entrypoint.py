"""Pipeline entrypoint - Standalone process without the HTTP API.

Usage:
    python -m chainstream.pipeline_entrypoint                          # Stream blocks and enrich until interrupted
    python -m chainstream.pipeline_entrypoint replay block 18500000    # Re-run one entity task and its follow-ups
    python -m chainstream.pipeline_entrypoint replay address 0xabc...
"""

import asyncio
import sys

from chainstream.core.errors import DataError
from chainstream.core.logging import get_logger
from chainstream.models.entities import STATUS_ENRICHED
from chainstream.services.runtime import build_runtime

logger = get_logger("pipeline_entrypoint")

REPLAY_KINDS = ("block", "transaction", "address", "smart_contract", "token")


async def run_stream() -> None:
    """Run the listener and workers until cancelled."""
    runtime = build_runtime()
    await runtime.ensure_collections()
    runtime.start(stream=True)
    try:
        await asyncio.Event().wait()
    finally:
        await runtime.stop()


async def run_replay(kind: str, key: str) -> str:
    """Replay one task, wait for everything it spawns, and report its own status."""
    runtime = build_runtime()
    try:
        runtime.pipeline.start()
        task = runtime.pipeline.replay(kind, key)
        await runtime.pipeline.drain()
        entity = runtime.store.get(task.kind, task.entity_id)
        logger.info(f"Replay of {kind} {key} finished with entity status {entity.status}")
        return entity.status
    finally:
        await runtime.stop()


def main():
    """Main entry point for the pipeline process."""
    logger.info("Pipeline starting...")

    args = sys.argv[1:]
    if not args:
        try:
            asyncio.run(run_stream())
        except KeyboardInterrupt:
            logger.info("Pipeline interrupted")
        return None

    if args[0] != "replay" or len(args) != 3 or args[1] not in REPLAY_KINDS:
        logger.error(f"Usage: replay <{'|'.join(REPLAY_KINDS)}> <key>")
        sys.exit(2)

    try:
        status = asyncio.run(run_replay(args[1], args[2]))
    except (DataError, LookupError, ValueError) as exc:
        logger.error(f"Replay rejected: {exc}")
        sys.exit(1)

    # Exit with error code unless the entity ended enriched
    if status != STATUS_ENRICHED:
        sys.exit(1)
    return status


if __name__ == "__main__":
    main()
