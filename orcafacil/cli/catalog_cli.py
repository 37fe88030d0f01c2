from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from orcafacil.app.catalog_import import CatalogParseResult, catalog_to_csv, parse_catalog_json, parse_catalog_text
from orcafacil.app.error_messages import pending_items_message
from orcafacil.app.services.quote_service import ServiceError, build_context, build_quote, summarize
from orcafacil.app.uom_convert import format_quantity
from orcafacil.shared.normalize import default_synonyms
from orcafacil.store import catalog_store, quote_store
from orcafacil.store.learned_store import SqlLearnedMatchStore

logger = logging.getLogger("orcafacil.cli")


class CLIError(Exception):
    """Raised when user input is invalid."""


def _resolve_format(path: Path, explicit: Optional[str], allowed: Iterable[str]) -> str:
    if explicit:
        fmt = explicit.lower()
        if fmt not in allowed:
            raise CLIError(f"Unsupported format '{explicit}'. Allowed: {', '.join(sorted(allowed))}")
        return fmt
    suffix = path.suffix.lower()
    if suffix in (".csv", ".txt", ".tsv") and "csv" in allowed:
        return "csv"
    if suffix == ".json" and "json" in allowed:
        return "json"
    raise CLIError("Unable to infer format from file extension. Please pass --format.")


def _read_text(path_arg: str) -> str:
    if path_arg == "-":
        return sys.stdin.read()
    path = Path(path_arg)
    if not path.exists():
        raise CLIError(f"File not found: {path}")
    return path.read_text(encoding="utf-8-sig")


def _read_catalog(path: Path, fmt: str) -> CatalogParseResult:
    text = _read_text(str(path))
    if fmt == "json":
        try:
            return parse_catalog_json(text)
        except ValueError as exc:
            raise CLIError(f"Invalid catalog JSON: {exc}") from exc
    return parse_catalog_text(text)


def _money(value: float) -> str:
    # R$ 1.234,56
    text = f"{value:,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def cmd_import_catalog(args: argparse.Namespace) -> None:
    path = Path(args.path)
    fmt = _resolve_format(path, args.format, {"csv", "json"})
    result = _read_catalog(path, fmt)
    if not result.items:
        raise CLIError(f"No valid catalog rows in {path} ({len(result.skipped)} skipped).")

    if args.replace:
        imported = catalog_store.replace_catalog(result.items)
        print(f"Imported {imported} products (catalog replaced); skipped={len(result.skipped)}.")
    else:
        existing = {item.id for item in catalog_store.list_items(include_deleted=True)}
        inserted = updated = 0
        for item in result.items:
            if item.id in existing:
                updated += 1
            else:
                inserted += 1
            catalog_store.upsert_item(item.to_dict())
        print(
            f"Imported {len(result.items)} products (inserted={inserted} updated={updated}); "
            f"skipped={len(result.skipped)}."
        )
    for line_no, reason in result.skipped:
        print(f"  skipped line {line_no}: {reason}", file=sys.stderr)


def cmd_export_catalog(args: argparse.Namespace) -> None:
    path = Path(args.path)
    fmt = _resolve_format(path, args.format, {"csv", "json"})
    items = catalog_store.list_items()
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "csv":
        path.write_text(catalog_to_csv(items), encoding="utf-8")
    else:
        payload = [
            {"id": item.id, "description": item.description, "price": item.price, "unit": item.unit}
            for item in items
        ]
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    print(f"Exported {len(items)} products to {path}.")


def cmd_quote(args: argparse.Namespace) -> None:
    order_text = _read_text(args.path)
    ctx = build_context(
        catalog_store.list_items(),
        logger=logger,
        learned_store_factory=SqlLearnedMatchStore,
        synonyms=default_synonyms(),
        bar_conversion=args.bar_conversion,
    )
    try:
        items, warnings = build_quote(order_text, ctx=ctx, mode="local")
    except ServiceError as exc:
        raise CLIError(exc.message) from exc

    for number, item in enumerate(items, start=1):
        product = item.catalog_item.description if item.catalog_item else "PENDENTE"
        marker = "*" if item.is_learned else " "
        print(
            f"{number:>3}.{marker}{format_quantity(item.quantity):>8}  {item.original_request[:40]:<40}  "
            f"{product[:45]:<45}  {_money(item.line_total):>14}"
        )
        if item.conversion_log:
            print(f"{'':>14}({item.conversion_log})")

    summary = summarize(items)
    print(
        f"\nTotal: {_money(summary.total_value)}  "
        f"found={summary.found} pending={summary.pending} items={summary.total_items}"
    )
    for warning in warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    pending = [item.original_request for item in items if item.is_pending]
    if pending:
        print("\n" + pending_items_message(pending))

    if args.save:
        saved = quote_store.save_quote(args.customer or "", items, order_text)
        print(f"Saved quote {saved['id']}.")


def cmd_learned(args: argparse.Namespace) -> None:
    matches = catalog_store.list_learned_matches()
    if not matches:
        print("No learned matches.")
        return
    for match in matches:
        print(f"{match.original_text} -> {match.product_id} ({match.confirmed_at:%Y-%m-%d %H:%M})")


def cmd_forget(args: argparse.Namespace) -> None:
    if args.all:
        removed = catalog_store.clear_learned_matches()
        print(f"Removed {removed} learned matches.")
        return
    if not args.text:
        raise CLIError("Pass --text or --all.")
    store = SqlLearnedMatchStore(catalog_store.get_item)
    if not store.forget(args.text):
        raise CLIError(f"No learned match for '{args.text}'.")
    print(f"Removed learned match for '{args.text}'.")


def cmd_stats(args: argparse.Namespace) -> None:
    counts = catalog_store.count_items()
    learned = len(catalog_store.list_learned_matches())
    quotes = len(quote_store.list_quotes())
    print(
        "Store stats:\n"
        f"- products: active={counts['active']} total={counts['total']}\n"
        f"- learned matches: {learned}\n"
        f"- saved quotes: {quotes}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage the product catalog and run local quotes.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_catalog = subparsers.add_parser("import-catalog", help="Import products from ID;Descrição;Preço CSV or JSON.")
    import_catalog.add_argument("--path", required=True)
    import_catalog.add_argument("--format", choices=("csv", "json"), default=None)
    import_catalog.add_argument(
        "--replace",
        dest="replace",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Deactivate products missing from the file (default).",
    )
    import_catalog.set_defaults(func=cmd_import_catalog)

    export_catalog = subparsers.add_parser("export-catalog", help="Export active products.")
    export_catalog.add_argument("--path", required=True)
    export_catalog.add_argument("--format", choices=("csv", "json"), default=None)
    export_catalog.set_defaults(func=cmd_export_catalog)

    quote = subparsers.add_parser("quote", help="Match an order text file against the catalog (local mode).")
    quote.add_argument("--path", required=True, help="Order text file, or '-' for stdin.")
    quote.add_argument("--customer", default="")
    quote.add_argument("--save", action="store_true", help="Store the result in the quote history.")
    quote.add_argument(
        "--bar-conversion",
        dest="bar_conversion",
        action=argparse.BooleanOptionalAction,
        default=True,
    )
    quote.set_defaults(func=cmd_quote)

    learned = subparsers.add_parser("learned", help="List learned request -> product matches.")
    learned.set_defaults(func=cmd_learned)

    forget = subparsers.add_parser("forget", help="Remove learned matches.")
    forget.add_argument("--text", default=None)
    forget.add_argument("--all", action="store_true")
    forget.set_defaults(func=cmd_forget)

    stats = subparsers.add_parser("stats", help="Show store stats.")
    stats.set_defaults(func=cmd_stats)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    quote_store.init_db()
    try:
        args.func(args)
    except CLIError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
