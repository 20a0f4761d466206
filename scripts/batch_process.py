"""Re-run analysis for every transcribed call that has no report yet.

Picks up calls whose analysis timed out, was skipped, or failed validation
during transcription.

Usage:
    python scripts/batch_process.py [--dry-run] [--limit N] [--output data/processed/batch_summary.json]
"""

import sys
import json
import time
import asyncio
import argparse
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv
load_dotenv()

from loguru import logger

from config.settings import Settings
from pipeline.analysis import ADMIN_USER_TYPE, analyze_call
from services.clients import ServiceClients, build_clients


async def reanalyze_pending(clients: ServiceClients, limit: int | None = None, dry_run: bool = False) -> list[dict]:
    """Analyze pending calls one at a time; returns one summary row per call."""
    call_ids = clients.repository.calls_pending_analysis()
    if limit:
        call_ids = call_ids[:limit]
    logger.info(f"Found {len(call_ids)} calls with a transcript but no report")

    results = []
    for i, call_id in enumerate(call_ids):
        if dry_run:
            results.append({"call_id": call_id, "status": "pending"})
            continue

        logger.info(f"Analyzing {i + 1}/{len(call_ids)}: {call_id}")
        start = time.time()
        outcome = await analyze_call(call_id, "batch", ADMIN_USER_TYPE, clients)
        results.append({
            "call_id": call_id,
            "status": "success" if outcome.success else "failed",
            "code": outcome.code.value,
            "report_id": outcome.report_id,
            "error": outcome.error,
            "processing_time_s": round(time.time() - start, 1),
        })
    return results


def main():
    parser = argparse.ArgumentParser(description="Re-run analysis for calls without a report")
    parser.add_argument("--dry-run", action="store_true", help="List pending calls without analyzing")
    parser.add_argument("--limit", type=int, default=None, help="Analyze at most N calls")
    parser.add_argument("--output", default="data/processed/batch_summary.json", help="Summary JSON path")
    args = parser.parse_args()

    settings = Settings.from_env()
    if not settings.analysis_configured and not args.dry_run:
        logger.error("GEMINI_API_KEY not set — nothing can be analyzed")
        sys.exit(1)

    clients = build_clients(settings)
    total_start = time.time()
    results = asyncio.run(reanalyze_pending(clients, limit=args.limit, dry_run=args.dry_run))
    total_elapsed = time.time() - total_start

    if not args.dry_run:
        summary_path = Path(args.output)
        summary_path.parent.mkdir(parents=True, exist_ok=True)
        with open(summary_path, "w") as f:
            json.dump(results, f, indent=2)

    print(f"\n{'='*80}")
    print(f"{'DRY RUN' if args.dry_run else 'BATCH ANALYSIS COMPLETE'} — {len(results)} calls in {total_elapsed:.0f}s")
    print(f"{'='*80}")
    print(f"{'Call':<40} {'Status':>8} {'Code':>20} {'Time':>6}")
    print("-" * 80)
    for r in results:
        t = f"{r['processing_time_s']:.0f}s" if "processing_time_s" in r else "-"
        print(f"{r['call_id'][:39]:<40} {r['status']:>8} {r.get('code', '-'):>20} {t:>6}")

    if not args.dry_run:
        print(f"\nResults saved to: {args.output}")
        succeeded = sum(1 for r in results if r["status"] == "success")
        print(f"Success: {succeeded}/{len(results)}")


if __name__ == "__main__":
    main()
