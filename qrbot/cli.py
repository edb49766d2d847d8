"""qrbot CLI — render QR codes and manage render entitlements from a shell."""

import argparse
import sys
from pathlib import Path

from qrbot.config import Settings
from qrbot.logging import audit, get_logger, setup_logging

log = get_logger("cli")


def _open_ledger(args):
    from qrbot.ledger import Ledger

    return Ledger(args.db)


def _read_logo(source: str, settings: Settings) -> bytes:
    if source.startswith(("http://", "https://")):
        from qrbot.artifacts import fetch_logo

        return fetch_logo(source, timeout=settings.logo_timeout, max_bytes=settings.logo_max_bytes)
    return Path(source).read_bytes()


def cmd_render(args, settings: Settings) -> int:
    """Render a QR code to a PNG file."""
    from qrbot.errors import AssetDownloadError, EmptyPayload, EncodingOverflow
    from qrbot.pool import RenderPool
    from qrbot.renderer import RenderRequest, RenderSettings

    try:
        logo = _read_logo(args.logo, settings) if args.logo else None
    except (AssetDownloadError, OSError) as e:
        print(f"Could not load logo: {e}", file=sys.stderr)
        return 1

    try:
        request = RenderRequest(
            payload=args.text,
            quality=args.quality,
            settings=RenderSettings(shape=args.shape, corner_radius=args.corner_radius),
            logo=logo,
        )
        with RenderPool(max_workers=settings.render_workers) as pool:
            result = pool.render(request)
    except (EmptyPayload, EncodingOverflow) as e:
        print(f"Cannot encode: {e}", file=sys.stderr)
        return 2

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.png)

    print(f"Rendered: {output} ({result.size}x{result.size})")
    print(f"  Version: {result.version} ({result.modules}x{result.modules} modules), ECC: H")
    print(f"  Cleared for logo: {result.cleared_modules} dark modules")
    print(f"  Logo: {'applied' if result.logo_applied else 'none'}")
    for warning in result.warnings:
        print(f"  Warning: {warning}")
    return 0


def cmd_verify(args, settings: Settings) -> int:
    """Decode a QR image with every available decoder."""
    from qrbot.verify import verify

    results = verify(Path(args.image).read_bytes(), expected_data=args.expected)
    all_pass = True
    for r in results:
        status = "PASS" if r.success else "FAIL"
        all_pass = all_pass and r.success
        print(f"  [{r.decoder:12s}] {status} | {r.decode_time_ms:6.1f}ms | {r.decoded_data or r.error}")
    return 0 if all_pass else 1


def _print_account(account) -> None:
    name = " ".join(p for p in (account.first_name, account.last_name) if p) or "-"
    print(f"User {account.user_id} ({name}, @{account.username or '-'})")
    print(f"  Standard (free): {account.free_standard_remaining}")
    print(f"  High:            {account.premium_high_remaining}")
    print(f"  Ultra:           {account.premium_ultra_remaining}")
    print(f"  Total spent:     {account.total_spent}")


def cmd_account(args, settings: Settings) -> int:
    """Show (creating if needed) a user's balances."""
    from qrbot.ledger import Profile

    profile = None
    if args.username or args.first_name or args.last_name:
        profile = Profile(args.username, args.first_name, args.last_name)
    with _open_ledger(args) as ledger:
        _print_account(ledger.get_or_create(args.user_id, profile))
        for p in ledger.recent_payments(args.user_id):
            print(f"  paid {p.amount} {p.currency} for {p.quantity}x {p.tier.value} ({p.charge_id})")
    return 0


def cmd_consume(args, settings: Settings) -> int:
    """Spend one render of a tier."""
    with _open_ledger(args) as ledger:
        ledger.get_or_create(args.user_id)
        if ledger.consume(args.user_id, args.tier):
            print(f"Consumed 1 {args.tier} render")
            return 0
    print(f"No {args.tier} renders left", file=sys.stderr)
    return 1


def cmd_pay(args, settings: Settings) -> int:
    """Record a successful payment for a product payload."""
    from qrbot.ledger import PaymentOutcome, PaymentRecord
    from qrbot.tiers import product_from_payload

    product = product_from_payload(args.payload)
    with _open_ledger(args) as ledger:
        ledger.get_or_create(args.user_id)
        outcome = ledger.record_payment(PaymentRecord(
            charge_id=args.charge_id,
            user_id=args.user_id,
            tier=product.tier,
            quantity=product.quantity,
            amount=args.amount if args.amount is not None else product.price,
            payload=product.payload,
        ))
    print("recorded" if outcome is PaymentOutcome.RECORDED else "already credited")
    return 0


def cmd_products(args, settings: Settings) -> int:
    """List purchasable packs."""
    from qrbot.tiers import CURRENCY, PRODUCTS

    for p in PRODUCTS:
        print(f"  {p.payload:10s} {p.price:>5d} {CURRENCY}  {p.title}")
    return 0


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qrbot", description="Styled QR codes with metered quality tiers")

    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=settings.log_file, help="Write JSON logs to file")
    parser.add_argument("--db", default=settings.db_url, help="Ledger database URL")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p_render = subparsers.add_parser("render", help="Render a QR code")
    p_render.add_argument("text", help="URL or text to encode")
    p_render.add_argument("-o", "--output", default="output/qr.png", help="Output PNG path")
    p_render.add_argument("-q", "--quality", default="standard", choices=["standard", "high", "ultra"])
    p_render.add_argument("--shape", default="square", choices=["square", "circle"], help="Module shape")
    p_render.add_argument("--corner-radius", type=float, default=0.0,
                          help="Square corner rounding as a fraction of the module (0-1)")
    p_render.add_argument("--logo", default=None, help="Logo file path or http(s) URL")

    p_ver = subparsers.add_parser("verify", help="Verify a QR code image")
    p_ver.add_argument("image", help="Path to QR code image")
    p_ver.add_argument("--expected", default=None, help="Expected decoded data (fails if mismatch)")

    p_acc = subparsers.add_parser("account", help="Show a user's balances")
    p_acc.add_argument("user_id", type=int)
    p_acc.add_argument("--username", default=None)
    p_acc.add_argument("--first-name", default=None)
    p_acc.add_argument("--last-name", default=None)

    p_con = subparsers.add_parser("consume", help="Spend one render")
    p_con.add_argument("user_id", type=int)
    p_con.add_argument("tier", choices=["standard", "high", "ultra"])

    p_pay = subparsers.add_parser("pay", help="Record a successful payment")
    p_pay.add_argument("user_id", type=int)
    p_pay.add_argument("charge_id", help="Provider charge id")
    p_pay.add_argument("payload", help="Invoice payload, e.g. 'high:5'")
    p_pay.add_argument("--amount", type=int, default=None, help="Amount paid (defaults to list price)")

    subparsers.add_parser("products", help="List purchasable packs")
    return parser


COMMANDS = {
    "render": cmd_render,
    "verify": cmd_verify,
    "account": cmd_account,
    "consume": cmd_consume,
    "pay": cmd_pay,
    "products": cmd_products,
}


def main(argv=None) -> int:
    settings = Settings.from_env()
    parser = build_parser(settings)
    args = parser.parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else settings.log_level, log_file=args.log_file)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        return 1

    code = COMMANDS[args.command](args, settings)
    audit("cli.done", logger=log, command=args.command, code=code)
    return code


if __name__ == "__main__":
    sys.exit(main())
