"""
Terminal counting device.

Reads scanned codes from stdin and keeps a session in sync through the
configured backend (SYNC_BACKEND=relay|cloud|local).

Input lines:
    CF280A        scan, add 1
    CF280A*12     scan, add 12
    +CF280A_0     add 1 to a record by id
    -CF280A_0     remove 1 from a record by id
    ?toner        search by code or description
    (empty line / EOF ends the count)

Usage:
    # Start a session from a workbook (code, description, stock in columns 0-2)
    python scripts/count_session.py host data/inventar.xlsx --stock-col 2

    # Follow a session created on another device
    python scripts/count_session.py join 123456 --export-dir exports/
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

import structlog

from config import configure_logging, get_settings
from exceptions import AppError
from integrations.session_store import get_session_store
from models.product import ColumnMapping
from services.counting_service import CountingSession
from services.reconcile_service import parse_quantity
from services.sync_client import SyncClient

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────────────────────
# INPUT HANDLING
# ─────────────────────────────────────────────────────────────

def split_scan_line(line: str) -> tuple[str, int]:
    """'CF280A*12' -> ('CF280A', 12); 'CF280A' -> ('CF280A', 1)"""
    code, sep, qty = line.partition("*")
    if not sep:
        return code.strip(), 1
    return code.strip(), parse_quantity(qty.strip())


async def handle_line(session: CountingSession, line: str) -> None:
    """Apply one input line to the session and print the outcome."""
    if line[0] in "+-" and any(p.id == line[1:] for p in session.products):
        delta = 1 if line[0] == "+" else -1
        result = await session.adjust(line[1:], delta)
        print(f"  {line[1:]}: {delta:+d}  {_push_status(result)}")
        return

    if line.startswith("?"):
        hits = session.search(line[1:])
        for record in hits[:20]:
            print(f"  {record.id:<24} {record.code:<16} {record.actual_stock:>5}/{record.scriptic_stock:<5} {record.description}")
        print(f"  {len(hits)} match(es)")
        return

    code, qty = split_scan_line(line)
    match = session.scan(code)

    if match.found:
        print(f"  {match.record.code} [{match.tier.value}] {match.record.description}")
    else:
        print(f"  {match.scanned}: new item")

    result = await session.confirm(match, qty)
    print(f"  +{qty}  {_push_status(result)}")


def _push_status(result) -> str:
    if result.ok:
        return "synced"
    if result.skipped:
        return "local only"
    return f"NOT SYNCED ({result.error})"


async def read_lines(session: CountingSession) -> None:
    """Scan loop; stops on an empty line or end of input."""
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        line = line.strip()
        if not line:
            return

        try:
            await handle_line(session, line)
        except AppError as e:
            print(f"  ERROR: {e.message}")


# ─────────────────────────────────────────────────────────────
# MAIN FLOW
# ─────────────────────────────────────────────────────────────

async def run(args) -> int:
    settings = get_settings()
    store = get_session_store(settings)
    session = CountingSession(sync=SyncClient(store), settings=settings)

    try:
        if args.command == "host":
            default = session.load_file(args.file)
            mapping = ColumnMapping(
                code_index=args.code_col if args.code_col is not None else default.code_index,
                desc_index=args.desc_col if args.desc_col is not None else default.desc_index,
                stock_index=args.stock_col if args.stock_col is not None else default.stock_index,
            )
            data = await session.confirm_mapping(mapping)
            print(f"Session {data.session_id} ({len(data.products)} products)")
            print(f"Join link: {session.share_url()}")
        else:
            data = await session.join(args.session_id)
            print(f"Joined session {data.session_id} ({len(data.products)} products)")

        print("Scan codes (empty line to finish):")
        await read_lines(session)

        stats = session.stats()
        print()
        print(f"Counted {stats.scanned_items}/{stats.total_items} items, "
              f"{stats.total_actual_stock} units, {stats.new_items} new, "
              f"{stats.discrepancies} discrepancies")

        export_dir = Path(args.export_dir)
        export_dir.mkdir(parents=True, exist_ok=True)
        target = export_dir / session.export_file_name()
        target.write_bytes(session.export().getvalue())
        print(f"Exported: {target}")
        return 0

    except AppError as e:
        logger.error("count_session_failed", code=e.code, error=e.message)
        print(f"ERROR: {e.message}")
        return 1

    finally:
        await session.close()


def main():
    parser = argparse.ArgumentParser(
        description="Count stock from the terminal, synced with other devices."
    )
    parser.add_argument(
        "--export-dir",
        default=".",
        help="Where the counted workbook is written on exit (default: current directory)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    host = subparsers.add_parser("host", help="Import a workbook and start a session")
    host.add_argument("file", help="Path to the .xlsx inventory file")
    host.add_argument("--code-col", type=int, default=None, help="Column index of the product code")
    host.add_argument("--desc-col", type=int, default=None, help="Column index of the description")
    host.add_argument(
        "--stock-col",
        type=int,
        default=None,
        help="Column index of the ledger stock, -1 if the sheet has none",
    )

    join = subparsers.add_parser("join", help="Join an existing session")
    join.add_argument("session_id", help="Session identifier shown by the host device")

    args = parser.parse_args()

    configure_logging(get_settings())
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
