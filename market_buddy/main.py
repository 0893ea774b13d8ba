from __future__ import annotations

import argparse
import logging
import re

from .catalog import JsonFileCatalog, SupabaseCatalog
from .config import REQUIRED_KEYS, Config
from .errors import SessionError
from .oracle import AzureOpenAIClient
from .parser import ListParser
from .report import FINISH_WORD, build_report, fmt_price, fmt_qty, render_cart, render_result, render_results, summarize
from .resolve import resolve_items
from .session import OrderSession

__version__ = "0.1.0"

_REMOVE_RE = re.compile(r"^(?:הסר|remove)\s+(\d+)$", re.IGNORECASE)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="market-buddy")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")

    sub = p.add_subparsers(dest="cmd", required=False)

    p_config = sub.add_parser("config", help="Config commands")
    sub_config = p_config.add_subparsers(dest="config_cmd", required=True)

    sub_config.add_parser("keys", help="List required configuration keys")

    p_check = sub_config.add_parser("check", help="Validate configuration is filled")
    p_check.add_argument("--source", choices=("env", "infisical"), default="env")
    p_check.add_argument("--env", default="dev")

    p_catalog = sub.add_parser("catalog", help="Catalog commands")
    sub_catalog = p_catalog.add_subparsers(dest="catalog_cmd", required=True)

    p_dump = sub_catalog.add_parser("dump", help="Print catalog products")
    p_dump.add_argument("--catalog", default=None, help="JSON catalog file (default: Supabase)")
    p_dump.add_argument("--limit", type=int, default=20)

    p_parse = sub.add_parser("parse", help="Parse a free-text grocery list")
    p_parse.add_argument("text")
    p_parse.add_argument("--offline", action="store_true", help="Use the local parser only")

    p_match = sub.add_parser("match", help="Parse and match a grocery list against the catalog")
    p_match.add_argument("text")
    p_match.add_argument("--catalog", default=None, help="JSON catalog file (default: Supabase)")
    p_match.add_argument("--offline", action="store_true", help="Do not call the language model")

    p_chat = sub.add_parser("chat", help="Interactive list-building session")
    p_chat.add_argument("--catalog", default=None, help="JSON catalog file (default: Supabase)")
    p_chat.add_argument("--offline", action="store_true", help="Do not call the language model")
    p_chat.add_argument("--out", default="artifacts/cart.json", help="Where to write the finalized cart")

    return p


def _catalog(cfg: Config, path: str | None):
    if path:
        return JsonFileCatalog(path)
    if not cfg.catalog_configured:
        raise RuntimeError("No --catalog file given and SUPABASE_URL/SUPABASE_KEY are not set")
    return SupabaseCatalog(url=cfg.supabase_url, api_key=cfg.supabase_key, table=cfg.products_table)


def _oracle(cfg: Config, offline: bool) -> AzureOpenAIClient | None:
    if offline or not cfg.oracle_configured:
        return None
    return AzureOpenAIClient.from_config(cfg)


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.version:
        print(__version__)
        return 0

    if args.cmd is None:
        p.print_help()
        return 0

    if args.cmd == "config":
        if args.config_cmd == "keys":
            for k in REQUIRED_KEYS:
                print(k)
            return 0

        if args.config_cmd == "check":
            # Intentionally do not print secret values
            if args.source == "infisical":
                Config.load_from_infisical(env=args.env)
            else:
                Config.load_from_env().check()
            print(f"OK: configuration present (source={args.source})")
            return 0

    cfg = Config.load_from_env()

    if args.cmd == "catalog":
        if args.catalog_cmd == "dump":
            products = _catalog(cfg, args.catalog).list_products()
            for prod in products[: args.limit]:
                size = f"{fmt_qty(prod.size_value)} {prod.effective_size_unit or ''}".strip() if prod.size_value else ""
                print(f"{prod.id}\t{prod.name}\t{prod.brand or ''}\t{size}\t{fmt_price(prod.price)}")
            print(f"({len(products)} products)")
            return 0

    if args.cmd == "parse":
        items = ListParser(_oracle(cfg, args.offline)).parse(args.text)
        if not items:
            print("No items recognized.")
            return 1
        for i, it in enumerate(items, 1):
            size = f"  size={fmt_qty(it.size)}" if it.size is not None else ""
            print(f"{i}. {fmt_qty(it.quantity)} {it.unit} | {it.description}  (confidence={it.confidence:.2f}){size}")
        return 0

    if args.cmd == "match":
        oracle = _oracle(cfg, args.offline)
        items = ListParser(oracle).parse(args.text)
        products = _catalog(cfg, args.catalog).list_products()
        results = resolve_items(items, products, oracle.select_best if oracle else None, cfg.matching)
        print(render_results(results, max_options=cfg.matching.max_candidates))
        counts = summarize(results)
        print(
            f"\nTotal: {counts['total']}  Certain: {counts['certain']}  "
            f"Choose: {counts['needs_selection']}  Not found: {counts['not_found']}"
        )
        return 0

    if args.cmd == "chat":
        return _run_chat(args, cfg)

    raise RuntimeError("unreachable")


def _run_chat(args, cfg: Config) -> int:
    oracle = _oracle(cfg, args.offline)
    session = OrderSession(
        catalog=_catalog(cfg, args.catalog),
        parser=ListParser(oracle),
        select=oracle.select_best if oracle else None,
        config=cfg.matching,
        delivery_fee=cfg.delivery_fee,
    )

    print(f'Type your grocery list. A number answers the first open question, "הסר N" removes line N, "{FINISH_WORD}" finishes.')
    while True:
        try:
            text = input("> ").strip()
        except EOFError:
            print()
            return 1
        if not text:
            continue

        if text == FINISH_WORD:
            try:
                cart = session.finalize()
            except SessionError as exc:
                print(f"  {exc}")
                _print_pending(session)
                continue
            print(render_cart(cart))
            path = build_report(cart).write_json(args.out)
            session.close()
            print(f"\nCart written to {path}")
            return 0

        m = _REMOVE_RE.match(text)
        if m:
            idx = int(m.group(1)) - 1
            if 0 <= idx < len(session.resolved_items):
                session.remove_resolved_item(session.resolved_items[idx].item_id)
            else:
                print("  no such line")
            print(render_cart(session.snapshot()))
            continue

        if text.isdigit() and session.pending_selections:
            pending = session.pending_selections[0]
            try:
                session.select_option(pending.pending_id, int(text) - 1)
            except SessionError as exc:
                print(f"  {exc}")
            _print_pending(session)
            if not session.pending_selections:
                print(render_cart(session.snapshot()))
            continue

        results = session.add_message(text)
        if not results:
            print("לא הצלחתי לזהות פריטים ברשימה שלך. אנא נסה שוב עם פורמט אחר או הוסף פרטים נוספים.")
            continue
        for r in results:
            print(render_result(r, max_options=cfg.matching.max_candidates))
        if session.pending_selections:
            _print_pending(session)
        else:
            print(render_cart(session.snapshot()))


def _print_pending(session: OrderSession) -> None:
    if not session.pending_selections:
        return
    pending = session.pending_selections[0]
    print(f"\nOpen question ({len(session.pending_selections)} left): {pending.item.description}")
    for i, c in enumerate(pending.options, 1):
        p = c.product
        print(f"  {i}. {p.name} ({p.brand or 'ללא מותג'}) - {fmt_price(p.price)}")


if __name__ == "__main__":
    raise SystemExit(main())
