"""
Ledger Vote admin tools.

Usage:
    # Show the ledger owner and admin
    ledgervote-admin owner
    ledgervote-admin who

    # Manage candidates (owner/admin, only while voting is inactive)
    ledgervote-admin candidates
    ledgervote-admin add "Alice"
    ledgervote-admin remove 3

    # Open a voting window, aligned to the ledger clock
    ledgervote-admin period 1767225600 1767229200

    # Clear the voting window and show results
    ledgervote-admin clear
    ledgervote-admin results

Writes are signed as ``--as`` (defaults to LEDGER_OWNER).
"""
import argparse
import asyncio
import sys
from dataclasses import dataclass
from typing import List, Optional

from ledgervote.core.config import settings
from ledgervote.core.errors import LedgerError
from ledgervote.core.logging import configure_logging
from ledgervote.ledger.client import LedgerClient
from ledgervote.schemas.ledger import TransactionReceipt
from ledgervote.services.admin_controller import AdminController
from ledgervote.services.clock import ClockReconciler
from ledgervote.services.identity import LocalWalletSession
from ledgervote.services.results_resolver import ResultsResolver
from ledgervote.services.tally import OutcomeKind


@dataclass
class AdminContext:
    ledger: LedgerClient
    admin: AdminController
    resolver: ResultsResolver


def _print_receipt(receipt: TransactionReceipt) -> None:
    print(f"Done. Tx: {receipt.confirmation_id} (block {receipt.block_number})")


async def cmd_owner(ctx: AdminContext, args: argparse.Namespace) -> int:
    print(f"Owner: {await ctx.ledger.owner()}")
    return 0


async def cmd_who(ctx: AdminContext, args: argparse.Namespace) -> int:
    roles = await ctx.ledger.get_roles()
    print(f"Admin: {roles.admin or '(none)'}")
    return 0


async def cmd_candidates(ctx: AdminContext, args: argparse.Namespace) -> int:
    candidates = await ctx.ledger.get_candidates()
    if not candidates.ids:
        print("No candidates")
        return 0
    print(f"{'ID':>4}  Name")
    for candidate_id, name in zip(candidates.ids, candidates.names):
        print(f"{candidate_id:>4}  {name}")
    return 0


async def cmd_add(ctx: AdminContext, args: argparse.Namespace) -> int:
    name = " ".join(args.name).strip()
    if not name:
        print('Usage: ledgervote-admin add "Candidate Name"', file=sys.stderr)
        return 1
    print(f"Adding candidate {name!r}...")
    _print_receipt(await ctx.admin.add_candidate(name))
    return 0


async def cmd_remove(ctx: AdminContext, args: argparse.Namespace) -> int:
    print(f"Removing candidate {args.candidate_id}...")
    _print_receipt(await ctx.admin.remove_candidate(args.candidate_id))
    return 0


async def cmd_set_admin(ctx: AdminContext, args: argparse.Namespace) -> int:
    print(f"Setting admin to {args.admin_identity}...")
    _print_receipt(await ctx.admin.set_admin(args.admin_identity))
    return 0


async def cmd_period(ctx: AdminContext, args: argparse.Namespace) -> int:
    if args.exact:
        receipt = await ctx.admin.set_voting_period(args.start, args.end)
    else:
        receipt = await ctx.admin.schedule_voting_period(args.start, args.end)
    period = await ctx.ledger.get_voting_period()
    print(f"Voting period: [{period.start_time}, {period.end_time})")
    _print_receipt(receipt)
    return 0


async def cmd_clear(ctx: AdminContext, args: argparse.Namespace) -> int:
    print("Clearing voting period...")
    _print_receipt(await ctx.admin.clear_voting_period())
    return 0


async def cmd_results(ctx: AdminContext, args: argparse.Namespace) -> int:
    rows = await ctx.resolver.results()
    print(f"Round {await ctx.ledger.current_round()}")
    for row in rows:
        print(f"{row.candidate_id:>4}  {row.name:<30} {row.votes:>6}  {row.percentage:6.2f}%")

    outcome = await ctx.resolver.resolve()
    if outcome.kind == OutcomeKind.TIE:
        print(f"Tie: {', '.join(outcome.names)} ({outcome.max_votes} votes each)")
    else:
        print(f"Winner: {outcome.winner}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledgervote-admin",
        description="Ledger Vote admin tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", default=settings.LEDGER_URL, help="Ledger base URL")
    parser.add_argument(
        "--as", dest="identity", default=settings.LEDGER_OWNER,
        help="Identity to sign writes as",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("owner", help="Show owner identity").set_defaults(handler=cmd_owner)
    subparsers.add_parser("who", help="Show admin identity").set_defaults(handler=cmd_who)
    subparsers.add_parser("candidates", help="List candidates").set_defaults(handler=cmd_candidates)

    add = subparsers.add_parser("add", help="Add a candidate (owner/admin only)")
    add.add_argument("name", nargs="+", help="Candidate name")
    add.set_defaults(handler=cmd_add)

    remove = subparsers.add_parser("remove", help="Remove a candidate (owner/admin only)")
    remove.add_argument("candidate_id", type=int, help="Candidate id")
    remove.set_defaults(handler=cmd_remove)

    set_admin = subparsers.add_parser("set-admin", help="Set the ledger admin (owner only)")
    set_admin.add_argument("admin_identity", metavar="IDENTITY", help="Admin identity")
    set_admin.set_defaults(handler=cmd_set_admin)

    period = subparsers.add_parser("period", help="Set the voting period (owner/admin only)")
    period.add_argument("start", type=int, help="Start, unix seconds")
    period.add_argument("end", type=int, help="End, unix seconds (exclusive)")
    period.add_argument(
        "--exact", action="store_true",
        help="Submit the window as given instead of aligning it to the ledger clock",
    )
    period.set_defaults(handler=cmd_period)

    subparsers.add_parser("clear", help="Clear the voting period").set_defaults(handler=cmd_clear)
    subparsers.add_parser("results", help="Show results and winner").set_defaults(handler=cmd_results)

    return parser


async def run(args: argparse.Namespace, ledger: Optional[LedgerClient] = None) -> int:
    ledger = ledger or LedgerClient(
        session=LocalWalletSession(args.identity),
        base_url=args.url,
    )
    async with ledger:
        clock = ClockReconciler(ledger)
        ctx = AdminContext(
            ledger=ledger,
            admin=AdminController(ledger, clock),
            resolver=ResultsResolver(ledger, clock),
        )
        try:
            return await args.handler(ctx, args)
        except LedgerError as e:
            print(f"Failed: {e.user_message} ({e.detail})", file=sys.stderr)
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        log_level="DEBUG" if args.verbose else "WARNING",
        log_format="console",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
