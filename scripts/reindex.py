import argparse
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from linkrec_server.config import settings
from linkrec_server.content.repository import ContentRepository
from linkrec_server.db import AsyncSessionLocal, Base, async_engine
from linkrec_server.indexing.engine import TfIdfEngine


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Rebuild the internal-linking index: queue, process, recompute."
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.default_batch_size,
        help="Documents per process call (default: %(default)s)",
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Delete the existing index first (required after tokenizer changes)",
    )
    parser.add_argument(
        "--max-batches",
        type=int,
        default=0,
        help="Stop after this many batches; 0 means run until drained",
    )
    return parser.parse_args(argv)


async def run(
    engine: TfIdfEngine,
    batch_size: int,
    clear: bool = False,
    max_batches: int = 0,
    idle_wait: float = 5.0,
) -> int:
    """
    Drive the engine through a full rebuild. Returns a process exit code.
    """
    if clear:
        print("Clearing index...")
        await engine.clear_index()

    print("Discovering published pages...")
    started = await engine.start_indexing()
    print(started.message)
    if not started.success:
        return 1

    batches = 0
    while True:
        result = await engine.process_batch(batch_size)
        batches += 1
        print(
            f"Batch {batches}: {result.processed} processed, "
            f"{result.failed} failed, {result.remaining} remaining"
        )
        if result.remaining == 0:
            break
        if max_batches and batches >= max_batches:
            print("Batch limit reached; run again to continue.")
            return 0
        if result.processed == 0 and result.failed == 0:
            # Everything left is claimed by another batch
            await asyncio.sleep(idle_wait)

    print("Recalculating IDF...")
    terms = await engine.recalculate_idf()
    print(f"Updated IDF for {terms} terms.")

    print("Calculating similarities (this may take time)...")
    similarities = await engine.calculate_all_similarities()
    if not similarities.success:
        print(similarities.message)
        return 0

    stats = await engine.get_index_stats()
    print(
        f"Done! {stats.processed_documents} documents, {stats.total_terms} terms, "
        f"{similarities.calculated} similarities."
    )
    return 0


async def main(argv=None) -> int:
    args = parse_args(argv)
    if args.batch_size < 1:
        print("--batch-size must be at least 1")
        return 2

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    engine = TfIdfEngine(AsyncSessionLocal, ContentRepository())
    try:
        return await run(engine, args.batch_size, clear=args.clear, max_batches=args.max_batches)
    finally:
        await async_engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
