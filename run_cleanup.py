#!/usr/bin/env python3
"""
Run the duel sweeps once from the command line.

This script runs:
- Expired lobby cleanup (WAITING/READY past expiry are cancelled and refunded)
- Timed-out round settlement (PLAYING past the time limit are finalized)

Usage:
    python run_cleanup.py                 # Run both sweeps
    python run_cleanup.py --dry-run       # Show what would be swept without doing it
    python run_cleanup.py --expired       # Only cancel expired lobbies
    python run_cleanup.py --timed-out     # Only finalize timed-out rounds
"""
import asyncio
import sys
import argparse
from quizduel.database import AsyncSessionLocal
from quizduel.services.duels import DuelLobbyService, DuelSettlementService
from quizduel.utils.clock import Clock, utc_now


async def run_cleanup(
    dry_run: bool = False,
    verbose: bool = False,
    expired_only: bool = False,
    timed_out_only: bool = False,
    session_factory=AsyncSessionLocal,
    clock: Clock = utc_now,
) -> dict:
    """
    Run duel sweep tasks.

    Args:
        dry_run: Show what would be swept without changing anything
        verbose: List the affected duel ids
        expired_only: Only run the expired lobby sweep
        timed_out_only: Only run the timed-out round sweep
        session_factory: Session factory to use (tests pass their own)
        clock: Source of "now" for the expiry and time limit checks

    Returns:
        dict of counts keyed by task
    """
    async with session_factory() as session:
        try:
            lobby_service = DuelLobbyService(session, clock)
            settlement_service = DuelSettlementService(session, clock)
            run_all = not (expired_only or timed_out_only)

            print("=" * 60)
            print("DUEL CLEANUP")
            print("=" * 60)

            if dry_run:
                print("\nDRY RUN MODE - No duel will be changed\n")

            results = {}

            # ===== Expired lobbies =====
            if expired_only or run_all:
                print("\n--- Expired Lobbies ---")
                expired_ids = await lobby_service.list_expired_duel_ids()
                if expired_ids:
                    print(f"Found {len(expired_ids)} expired lobby(ies)")
                    if verbose:
                        for duel_id in expired_ids:
                            print(f"  - {duel_id}")
                    if dry_run:
                        results["would_cancel"] = len(expired_ids)
                    else:
                        results["cancelled"] = await lobby_service.check_expired_duels()
                else:
                    print("No expired lobbies found.")

            # ===== Timed-out rounds =====
            if timed_out_only or run_all:
                print("\n--- Timed-out Rounds ---")
                timed_out_ids = await settlement_service.list_timed_out_duel_ids()
                if timed_out_ids:
                    print(f"Found {len(timed_out_ids)} timed-out round(s)")
                    if verbose:
                        for duel_id in timed_out_ids:
                            print(f"  - {duel_id}")
                    if dry_run:
                        results["would_finalize"] = len(timed_out_ids)
                    else:
                        results["finalized"] = await settlement_service.check_timed_out_duels()
                else:
                    print("No timed-out rounds found.")

            # ===== Summary =====
            print("\n" + "=" * 60)
            print("CLEANUP SUMMARY")
            print("=" * 60)

            if results:
                for key, value in results.items():
                    print(f"  {key}: {value}")
            else:
                print("\nNo duels needed cleanup.")

            print()
            return results

        except Exception as e:
            print(f"\nError during cleanup: {e}", file=sys.stderr)
            raise


def main():
    """Main entry point for the duel cleanup script."""
    parser = argparse.ArgumentParser(
        description="Run duel sweep tasks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                 # Run both sweeps
  %(prog)s --dry-run -v    # Show which duels would be swept
  %(prog)s --expired       # Only cancel expired lobbies
  %(prog)s --timed-out     # Only finalize timed-out rounds
        """
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be swept without changing anything"
    )
    parser.add_argument(
        "--expired",
        action="store_true",
        help="Only cancel expired lobbies"
    )
    parser.add_argument(
        "--timed-out",
        action="store_true",
        help="Only finalize timed-out rounds"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="List the affected duel ids"
    )

    args = parser.parse_args()

    asyncio.run(run_cleanup(
        dry_run=args.dry_run,
        verbose=args.verbose,
        expired_only=args.expired,
        timed_out_only=args.timed_out,
    ))


if __name__ == "__main__":
    main()
