from __future__ import annotations

"""Command line client for a local storefront ledger.

Every command acts as a deterministic identity derived from --user, so the
same name always maps to the same wallet across runs.

  storefront --user alice airdrop 1000000000
  storefront --user alice make-store books
  storefront --user alice add-to-store books dune 500000
  storefront --user bob buy books dune
"""

import argparse
import dataclasses
import json
import os
import sys
from typing import Any, Dict, List, Optional

from storefront.crypto.sig import Keypair
from storefront.env import load_dotenv_if_present
from storefront.ledger.pubkey import Pubkey
from storefront.program.instructions import (
    add_to_store_ix,
    buy_ix,
    close_ix,
    delete_from_store_ix,
    list_products,
    make_store_ix,
    product_address,
    read_product,
    read_store,
    store_address,
    wipe_ix,
)
from storefront.runtime.config import load_market_config
from storefront.runtime.errors import DecodeError
from storefront.runtime.event_log import configure_structured_logging
from storefront.runtime.executor import Executor, ExecutorError, TxReceipt
from storefront.runtime.executor_boot import build_executor
from storefront.runtime.tx import Instruction, new_transaction

Json = Dict[str, Any]


def user_keypair(label: str) -> Keypair:
    return Keypair.from_label("user:" + label)


def _print(obj: Json) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def _send(ex: Executor, usr: Keypair, ix: Instruction) -> TxReceipt:
    return ex.submit(new_transaction([ix], [usr]))


def _resolve_store(ex: Executor, raw: str) -> Pubkey:
    """A base58 address, else a store name."""
    try:
        return Pubkey.from_string(raw)
    except ValueError:
        return store_address(raw, ex.program_id)


def _fail(receipt: TxReceipt) -> int:
    _print({"ok": False, "receipt": receipt.to_json()})
    return 1


# ----------------------------
# Commands
# ----------------------------


def cmd_make_store(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    ix = make_store_ix(ex.program_id, usr.pubkey, args.name)
    receipt = _send(ex, usr, ix)
    if not receipt.ok:
        return _fail(receipt)
    _print({"ok": True, "store": str(ix.accounts[0].pubkey), "tx_id": receipt.tx_id})
    return 0


def cmd_add_to_store(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    store = _resolve_store(ex, args.store)
    ix = add_to_store_ix(ex.program_id, usr.pubkey, store, args.product, args.price)
    receipt = _send(ex, usr, ix)
    if not receipt.ok:
        return _fail(receipt)
    _print({"ok": True, "product": str(ix.accounts[0].pubkey), "tx_id": receipt.tx_id})
    return 0


def cmd_delete_from_store(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    store = _resolve_store(ex, args.store)
    product = product_address(store, args.product, ex.program_id)
    receipt = _send(ex, usr, delete_from_store_ix(ex.program_id, usr.pubkey, store, product))
    if not receipt.ok:
        return _fail(receipt)
    _print({"ok": True, "deleted": str(product), "tx_id": receipt.tx_id})
    return 0


def cmd_buy(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    store_key = _resolve_store(ex, args.store)
    store = read_store(ex, store_key)
    if store is None:
        _print({"ok": False, "error": "store_not_found", "store": str(store_key)})
        return 1
    product = product_address(store_key, args.product, ex.program_id)
    receipt = _send(ex, usr, buy_ix(ex.program_id, usr.pubkey, store_key, product, store.owner))
    if not receipt.ok:
        return _fail(receipt)
    _print({"ok": True, "bought": args.product, "product": str(product), "tx_id": receipt.tx_id})
    return 0


def cmd_get_store(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    store_key = _resolve_store(ex, args.store)
    store = read_store(ex, store_key)
    if store is None:
        _print({"ok": False, "error": "store_not_found", "store": str(store_key)})
        return 1
    products = [
        {"pubkey": str(k), "name": p.name, "price": p.price, "sold": p.owner != p.store}
        for (k, p) in list_products(ex, store_key)
    ]
    _print(
        {
            "ok": True,
            "store": str(store_key),
            "name_of_store": store.name_of_store,
            "owner": str(store.owner),
            "products": products,
        }
    )
    return 0


def cmd_get_product(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    key = Pubkey.from_string(args.product)
    product = read_product(ex, key)
    if product is None:
        _print({"ok": False, "error": "product_not_found", "product": str(key)})
        return 1
    _print(
        {
            "ok": True,
            "product": str(key),
            "name": product.name,
            "price": product.price,
            "owner": str(product.owner),
            "store": str(product.store),
            "sold": product.owner != product.store,
        }
    )
    return 0


def cmd_close(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    """Delete every unsold product of the store, then close the store itself."""
    store = _resolve_store(ex, args.store)
    deleted: List[str] = []
    for key, _product in list_products(ex, store, unsold_only=True):
        receipt = _send(ex, usr, delete_from_store_ix(ex.program_id, usr.pubkey, store, key))
        if not receipt.ok:
            return _fail(receipt)
        deleted.append(str(key))

    receipt = _send(ex, usr, close_ix(ex.program_id, usr.pubkey, store))
    if not receipt.ok:
        return _fail(receipt)
    _print({"ok": True, "closed": str(store), "deleted_products": deleted, "tx_id": receipt.tx_id})
    return 0


def cmd_wipe(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    """Reclaim every account the program owns to the current user."""
    wiped: List[str] = []
    for key, _acct in ex.scan():
        receipt = _send(ex, usr, wipe_ix(ex.program_id, usr.pubkey, key))
        if not receipt.ok:
            return _fail(receipt)
        wiped.append(str(key))
    _print({"ok": True, "wiped": wiped})
    return 0


def cmd_airdrop(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    try:
        balance = ex.airdrop(usr.pubkey, args.lamports)
    except (ExecutorError, ValueError) as e:
        _print({"ok": False, "error": str(e)})
        return 1
    _print({"ok": True, "pubkey": str(usr.pubkey), "balance": balance})
    return 0


def cmd_balance(ex: Executor, usr: Keypair, args: argparse.Namespace) -> int:
    _print({"ok": True, "pubkey": str(usr.pubkey), "balance": ex.get_balance(usr.pubkey)})
    return 0


def _parse_args(argv: List[str]) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="storefront", description="Storefront marketplace client (local ledger)")
    ap.add_argument("--user", default=os.environ.get("STOREFRONT_USER", "default"), help="identity label to act as")
    ap.add_argument(
        "--secret",
        default=os.environ.get("STOREFRONT_USER_SECRET") or None,
        help="hex or base64 ed25519 seed; overrides --user",
    )
    ap.add_argument("--config", dest="config_path", default=None, help="market config JSON (else STOREFRONT_* env)")
    ap.add_argument("--db", dest="db_path", default=None, help="override the ledger database path")

    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("make-store")
    p.add_argument("name")
    p.set_defaults(func=cmd_make_store)

    p = sub.add_parser("add-to-store")
    p.add_argument("store", help="store name or address")
    p.add_argument("product")
    p.add_argument("price", type=int)
    p.set_defaults(func=cmd_add_to_store)

    p = sub.add_parser("delete-from-store")
    p.add_argument("store", help="store name or address")
    p.add_argument("product")
    p.set_defaults(func=cmd_delete_from_store)

    p = sub.add_parser("buy")
    p.add_argument("store", help="store name or address")
    p.add_argument("product")
    p.set_defaults(func=cmd_buy)

    p = sub.add_parser("get-store")
    p.add_argument("store", help="store name or address")
    p.set_defaults(func=cmd_get_store)

    p = sub.add_parser("get-product")
    p.add_argument("product", help="product address")
    p.set_defaults(func=cmd_get_product)

    p = sub.add_parser("close")
    p.add_argument("store", help="store name or address")
    p.set_defaults(func=cmd_close)

    p = sub.add_parser("wipe")
    p.set_defaults(func=cmd_wipe)

    p = sub.add_parser("airdrop")
    p.add_argument("lamports", type=int)
    p.set_defaults(func=cmd_airdrop)

    p = sub.add_parser("balance")
    p.set_defaults(func=cmd_balance)

    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv_if_present()
    args = _parse_args(sys.argv[1:] if argv is None else argv)

    cfg = load_market_config(config_path=args.config_path)
    if args.db_path:
        cfg = dataclasses.replace(cfg, db_path=str(args.db_path))
    configure_structured_logging(cfg.log_level)

    ex = build_executor(cfg)
    try:
        usr = Keypair.from_secret(args.secret) if args.secret else user_keypair(str(args.user))
        return int(args.func(ex, usr, args))
    except (DecodeError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
