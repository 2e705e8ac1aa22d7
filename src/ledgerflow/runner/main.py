"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from ..config import Config, create_default_config, load_config
from ..errors import LedgerflowError
from ..ingest import StatementFormat, parse_statement
from ..learning import LearningStore
from ..review import BulkResult, ReviewQueue
from ..services import ReconciliationService, StatementPipeline
from ..state_store import StateStore

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIXES = (".txt", ".text")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ledgerflow",
        description="Ingest bank statements, classify and reconcile transactions",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init command
    subparsers.add_parser("init", help="Write a default config file")

    # ingest / parse commands
    for name, help_text in (
        ("ingest", "Parse, classify, store and reconcile a statement"),
        ("parse", "Parse a statement and print the transactions as JSON (nothing stored)"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("file", type=Path, help="Statement file")
        sub.add_argument("--owner", required=True, help="Owner (business) id")
        sub.add_argument(
            "--format",
            choices=[f.value for f in StatementFormat],
            help="Statement format (default: document for .txt files, else delimited)",
        )

    # review command
    review_parser = subparsers.add_parser("review", help="Work the review queue")
    review_sub = review_parser.add_subparsers(dest="action", help="Review action")

    list_parser = review_sub.add_parser("list", help="List transactions awaiting review")
    list_parser.add_argument("--owner", required=True, help="Owner (business) id")
    list_parser.add_argument("--limit", type=int, default=50, help="Maximum rows (default: 50)")
    list_parser.add_argument("--offset", type=int, default=0, help="Rows to skip (default: 0)")

    for name, help_text in (
        ("approve", "Approve transactions as classified"),
        ("reject", "Reject classifications (they stay in the queue)"),
        ("delete", "Delete unmatched transactions"),
    ):
        sub = review_sub.add_parser(name, help=help_text)
        sub.add_argument("ids", type=int, nargs="+", help="Transaction ID(s)")
        if name != "delete":
            sub.add_argument("--reviewer", help="Reviewer name")
        if name == "reject":
            sub.add_argument("--notes", help="Reason for rejecting")

    recat_parser = review_sub.add_parser("recategorize", help="Set a confirmed category")
    recat_parser.add_argument("ids", type=int, nargs="+", help="Transaction ID(s)")
    recat_parser.add_argument("--category", required=True, help="New category")
    recat_parser.add_argument("--reviewer", help="Reviewer name")

    for name, target in (("match-invoice", "Invoice"), ("match-bill", "Bill")):
        sub = review_sub.add_parser(name, help=f"Settle a {target.lower()} with a transaction")
        sub.add_argument("transaction_id", type=int, help="Transaction ID")
        sub.add_argument("target_id", type=int, help=f"{target} ID")
        sub.add_argument("--reviewer", help="Reviewer name")
        sub.add_argument("--notes", help="Review notes")

    # three-way command
    three_way_parser = subparsers.add_parser(
        "three-way", help="Three-way match a purchase order, goods receipt and bill"
    )
    three_way_parser.add_argument("po_id", type=int, help="Purchase order ID")
    three_way_parser.add_argument("receipt_id", type=int, help="Goods receipt ID")
    three_way_parser.add_argument("bill_id", type=int, help="Bill ID")

    # learned command
    learned_parser = subparsers.add_parser("learned", help="Show or rebuild learned mappings")
    learned_parser.add_argument("--owner", required=True, help="Owner (business) id")
    group = learned_parser.add_mutually_exclusive_group()
    group.add_argument(
        "--rebuild",
        action="store_true",
        help="Recreate mappings from reviewed transaction history",
    )
    group.add_argument("--clear", action="store_true", help="Delete all learned mappings")

    # status command
    status_parser = subparsers.add_parser("status", help="Show pipeline status")
    status_parser.add_argument("--owner", help="Limit to one owner")

    return parser


def _statement_format(path: Path, explicit: str | None) -> StatementFormat:
    if explicit:
        return StatementFormat(explicit)
    if path.suffix.lower() in DOCUMENT_SUFFIXES:
        return StatementFormat.DOCUMENT
    return StatementFormat.DELIMITED


def cmd_init(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"⚠️  {config_path} already exists, not overwriting")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def cmd_parse(config: Config, path: Path, owner_id: str, fmt: str | None) -> int:
    """Parse a statement and print the result as JSON."""
    result = parse_statement(
        path.read_bytes(), _statement_format(path, fmt), owner_id, config.ingest
    )
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def cmd_ingest(config: Config, path: Path, owner_id: str, fmt: str | None) -> int:
    """Run a statement through the full pipeline."""
    statement_format = _statement_format(path, fmt)
    print(f"📥 Ingesting {path.name} ({statement_format.value}) for {owner_id}...")

    store = StateStore(config.state_db_path)
    pipeline = StatementPipeline(store, config)
    result = pipeline.run(path.read_bytes(), statement_format, owner_id)

    print()
    print("📊 Ingest Results")
    print("=" * 40)
    print(f"  Parsed:        {result.parsed}")
    print(f"  Duplicates:    {result.duplicates}")
    print(f"  Skipped rows:  {result.skipped}")
    print(f"  Parse errors:  {len(result.parse_errors)}")
    print(f"  Auto-approved: {result.auto_approved}")
    print(f"  Needs review:  {result.needs_review}")
    print(f"  Matched:       {result.matched}")
    print()

    for error in result.parse_errors:
        print(f"   line {error.line}: {error.reason}")
    for reason, count in result.skip_reasons.items():
        print(f"   skipped {count} x {reason}")

    if result.errors:
        print("⚠️  Errors encountered:")
        for error in result.errors:
            print(f"   - {error}")

    if result.success:
        print("✓ Ingest completed successfully")
        return 0
    print("❌ Ingest completed with errors")
    return 1


def _describe(txn) -> str:
    flag = "⏳" if txn.needs_review else "✓"
    return (
        f"{flag} [{txn.id}] {txn.date} {txn.amount:>12} {txn.description[:40]:<40} "
        f"{txn.category.value} ({txn.confidence})"
    )


def _print_bulk(result: BulkResult) -> int:
    for item in result.items:
        if item.ok and item.transaction is not None:
            print(f"  {_describe(item.transaction)}")
        elif item.ok:
            print(f"  ✓ [{item.id}]")
        else:
            print(f"  ❌ [{item.id}] {item.error}")
    print(f"\n✓ {result.action}: {result.succeeded} succeeded, {result.failed} failed")
    return 0 if result.failed == 0 else 1


def cmd_review(config: Config, parsed: argparse.Namespace) -> int:
    """Run a review queue action."""
    store = StateStore(config.state_db_path)
    queue = ReviewQueue(store, config)
    action = parsed.action

    if action == "list":
        pending = queue.pending(parsed.owner, limit=parsed.limit, offset=parsed.offset)
        stats = queue.stats(parsed.owner)
        print(f"\n📋 Review queue for {parsed.owner}: {stats['pending_count']} pending")
        print("=" * 40)
        for txn in pending:
            reason = txn.review_reason.value if txn.review_reason else "-"
            print(f"  {_describe(txn)} [{reason}]")
        print()
        print(f"  Average confidence: {stats['average_confidence']}")
        print(f"  Reviewed today:     {stats['reviewed_today']}")
        for reason, count in stats["by_review_reason"].items():
            print(f"  {reason:<20}{count}")
        return 0

    if action in ("approve", "reject", "recategorize", "delete"):
        ids = parsed.ids
        if action == "delete":
            return _print_bulk(queue.bulk_delete(ids))
        if len(ids) > 1:
            if action == "approve":
                return _print_bulk(queue.bulk_approve(ids, parsed.reviewer))
            if action == "reject":
                return _print_bulk(queue.bulk_reject(ids, parsed.reviewer, parsed.notes))
            return _print_bulk(queue.bulk_recategorize(ids, parsed.category, parsed.reviewer))

        if action == "approve":
            txn = queue.approve(ids[0], parsed.reviewer)
        elif action == "reject":
            txn = queue.reject(ids[0], parsed.reviewer, parsed.notes)
        else:
            txn = queue.recategorize(ids[0], parsed.category, parsed.reviewer)
        print(f"  {_describe(txn)}")
        return 0

    if action in ("match-invoice", "match-bill"):
        if action == "match-invoice":
            txn = queue.match_invoice(
                parsed.transaction_id, parsed.target_id, parsed.reviewer, parsed.notes
            )
        else:
            txn = queue.match_bill(
                parsed.transaction_id, parsed.target_id, parsed.reviewer, parsed.notes
            )
        obligation_id = txn.matched_receivable_id or txn.matched_payable_id
        obligation = store.get_obligation(obligation_id)
        print(f"  {_describe(txn)}")
        print(
            f"  → {obligation.kind.value} {obligation.id}: paid {obligation.paid_amount}, "
            f"balance {obligation.balance_amount} ({obligation.status.value})"
        )
        return 0

    print("Usage: ledgerflow review <action> (see --help)")
    return 1


def cmd_three_way(config: Config, po_id: int, receipt_id: int, bill_id: int) -> int:
    """Run a three-way match and print the discrepancies."""
    store = StateStore(config.state_db_path)
    service = ReconciliationService(store, config)
    result = service.three_way_match(po_id, receipt_id, bill_id)

    print(f"\n🔎 Three-way match: {result.match_status.value}")
    for d in result.discrepancies:
        print(f"   - {json.dumps(d.to_dict())}")
    return 0 if result.is_matched else 1


def cmd_learned(config: Config, owner_id: str, rebuild: bool, clear: bool) -> int:
    """Show, rebuild or clear learned mappings."""
    store = StateStore(config.state_db_path)
    learning = LearningStore(store, config.classification)

    if clear:
        removed = learning.clear(owner_id)
        print(f"✓ Removed {removed} learned mapping(s) for {owner_id}")
        return 0
    if rebuild:
        replayed = learning.rebuild_from_history(owner_id)
        print(f"✓ Rebuilt mappings from {replayed} reviewed transaction(s)")

    stats = learning.export_stats(owner_id)
    print(f"\n🧠 Learned mappings for {owner_id}")
    print("=" * 40)
    print(f"  Vendor mappings:      {stats['vendor_mappings']}")
    print(f"  Pattern mappings:     {stats['pattern_mappings']}")
    print(f"  Learned transactions: {stats['learned_transactions']}")
    for vendor in stats["top_vendors"]:
        print(f"   - {vendor['vendor']}: {vendor['category']} ({vendor['confidence']})")
    return 0


def cmd_status(config: Config, owner_id: str | None) -> int:
    """Show pipeline status."""
    store = StateStore(config.state_db_path)
    stats = store.get_stats(owner_id)

    print("\n📊 Pipeline Status")
    print("=" * 40)
    print(f"  Transactions total:   {stats['transactions_total']}")
    print(f"  Pending review:       {stats['pending_review']}")
    print(f"  Matched:              {stats['matched']}")
    print(f"  Open obligations:     {stats['open_obligations']}")
    print(f"  Vendor mappings:      {stats['vendor_mappings']}")
    print(f"  Pattern mappings:     {stats['pattern_mappings']}")

    if owner_id:
        owner = store.get_owner(owner_id)
        if owner:
            runway = "∞" if owner.runway_months is None else f"{owner.runway_months} months"
            print(f"  Cash balance:         {owner.cash_balance}")
            print(f"  Monthly burn:         {owner.monthly_burn}")
            print(f"  Monthly revenue:      {owner.monthly_revenue}")
            print(f"  Runway:               {runway}")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init":
        return cmd_init(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    try:
        if parsed.command == "ingest":
            return cmd_ingest(config, parsed.file, parsed.owner, parsed.format)
        elif parsed.command == "parse":
            return cmd_parse(config, parsed.file, parsed.owner, parsed.format)
        elif parsed.command == "review":
            return cmd_review(config, parsed)
        elif parsed.command == "three-way":
            return cmd_three_way(config, parsed.po_id, parsed.receipt_id, parsed.bill_id)
        elif parsed.command == "learned":
            return cmd_learned(config, parsed.owner, parsed.rebuild, parsed.clear)
        elif parsed.command == "status":
            return cmd_status(config, parsed.owner)
        else:
            parser.print_help()
            return 1
    except LedgerflowError as e:
        logger.debug("Command %s failed", parsed.command, exc_info=True)
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
