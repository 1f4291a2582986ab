"""cardqr CLI: render, verify and publish styled card QR codes."""

import argparse
import json
import sys
from pathlib import Path

from cardqr.config import get_settings
from cardqr.logging import audit, get_logger, setup_logging

log = get_logger("cli")


def _load_style(args) -> dict:
    """--style takes inline JSON or @path/to/style.json; --preset overlays a preset."""
    from cardqr.style import apply_preset

    raw = {}
    if args.style:
        text = Path(args.style[1:]).read_text() if args.style.startswith("@") else args.style
        raw = json.loads(text)
    if getattr(args, "preset", None):
        raw = apply_preset(raw, args.preset).to_dict()
    if getattr(args, "size", None):
        raw["size"] = args.size
    return raw


def _build_pipeline(args):
    from cardqr.pipeline import QRPipeline
    from cardqr.publish import ArtifactPublisher
    from cardqr.storage import get_object_store

    return QRPipeline(ArtifactPublisher(get_object_store()), ecc=args.ecc)


def _build_service(args):
    from cardqr.records import JsonRecordStore
    from cardqr.service import CardQRService

    return CardQRService(JsonRecordStore(args.db or get_settings().records_path), _build_pipeline(args))


def cmd_render(args):
    """Render a code to a local file (no upload)."""
    from cardqr.errors import CardQRError

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    try:
        if args.layer:
            from cardqr.render import render
            from cardqr.style import resolve

            data = render(args.url, resolve(_load_style(args)), ecc=args.ecc)
        else:
            data = _build_pipeline(args).build(args.url, _load_style(args))
    except CardQRError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    output.write_bytes(data)
    print(f"Rendered: {output} ({len(data)} bytes)")


def cmd_composite(args):
    """Put a rendered transparent code layer over a cover-fit background logo."""
    from cardqr.composite import composite_background
    from cardqr.errors import CardQRError

    code = Path(args.code).read_bytes()
    try:
        data = composite_background(code, args.logo, args.size, args.opacity, args.backdrop)
    except CardQRError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    print(f"Composited: {output} ({len(data)} bytes)")


def cmd_verify(args):
    """Decode a code image with every available decoder."""
    from cardqr.verify import verify

    results = verify(Path(args.image).read_bytes(), expected_data=args.expected)
    all_pass = True
    for r in results:
        status = "PASS" if r.success else "FAIL"
        if not r.success:
            all_pass = False
        print(f"  [{r.decoder:12s}] {status} | {r.decode_time_ms:6.1f}ms | {r.decoded_data or r.error}")
    sys.exit(0 if all_pass else 1)


def cmd_publish(args):
    """Render and upload a code; print its public URL."""
    from cardqr.errors import CardQRError

    pipeline = _build_pipeline(args)
    try:
        data = pipeline.build(args.url, _load_style(args))
        url = pipeline.publisher.publish(data, args.owner, args.slug)
    except CardQRError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"Published: {url}")


def cmd_add_card(args):
    """Register a card in the local card store."""
    from cardqr.records import CardRecord, JsonRecordStore

    store = JsonRecordStore(args.db or get_settings().records_path)
    theme = {"qr": _load_style(args)} if args.style or args.preset else {}
    card = store.put(CardRecord(id=args.card_id, owner_id=args.owner, slug=args.slug,
                                share_url=args.share_url, theme=theme))
    print(f"Card {card.id} saved (slug={card.slug}, published={card.is_published})")


def _report(outcome) -> None:
    if outcome.notice:
        print(f"{outcome.notice.level.upper()}: {outcome.notice.message}")
    if outcome.card:
        print(f"  QR URL: {outcome.card.qr_code_url or '-'} (regenerated={outcome.regenerated})")
    if not outcome.ok:
        sys.exit(1)


def cmd_publish_card(args):
    """Publish (or unpublish) a card; builds its first code when needed."""
    _report(_build_service(args).publish(args.card_id, published=not args.unpublish))


def cmd_regenerate(args):
    """Force a new code for a card, optionally saving a local copy."""
    service = _build_service(args)
    outcome = service.regenerate(args.card_id)
    if outcome.ok and outcome.image and args.output:
        out = Path(args.output)
        if out.is_dir():
            out = out / service.download_name(args.card_id)
        out.write_bytes(outcome.image)
        print(f"Downloaded: {out}")
    _report(outcome)


def cmd_presets(args):
    """List the built-in style presets."""
    from cardqr.style import PRESETS, resolve

    for name, preset in PRESETS.items():
        spec = resolve(preset)
        grad = f"{spec.gradient.type} {spec.gradient.color1}->{spec.gradient.color2}" if spec.gradient.enabled else "solid"
        print(f"  {name:13s} pattern={spec.pattern:15s} eyes={spec.eye_style:14s} "
              f"{spec.dark_color} on {spec.light_color} ({grad})")


def cmd_serve(args):
    """Start the editor API server."""
    from cardqr.server import create_app

    app = create_app(_build_service(args))
    print(f"Starting cardqr server on http://0.0.0.0:{args.port}")
    app.run(host="0.0.0.0", port=args.port, debug=args.debug)


def _add_style_args(p):
    from cardqr.style import PRESETS

    p.add_argument("--style", default=None, help="Style JSON, or @file.json")
    p.add_argument("--preset", default=None, choices=sorted(PRESETS), help="Apply a built-in preset")
    p.add_argument("--size", type=int, default=None, help="Output size in pixels (64-2048)")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="cardqr", description="Styled QR codes for digital business cards")

    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")
    parser.add_argument("--ecc", default=None, choices=["L", "M", "Q", "H"], help="Error correction level")
    parser.add_argument("--db", default=None, help="Card store JSON file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p_render = subparsers.add_parser("render", help="Render a QR code to a file")
    p_render.add_argument("url", help="URL to encode")
    p_render.add_argument("-o", "--output", default="output/qr.png", help="Output file path")
    p_render.add_argument("--layer", action="store_true", help="Write the bare code layer (no composite, no frame)")
    _add_style_args(p_render)

    p_comp = subparsers.add_parser("composite", help="Blend a background logo under a rendered code layer")
    p_comp.add_argument("code", help="Code layer PNG (rendered with a background-logo style)")
    p_comp.add_argument("--logo", required=True, help="Logo URL, data: URL or file path")
    p_comp.add_argument("--size", type=int, default=512, help="Canvas size; must match the code layer")
    p_comp.add_argument("--opacity", type=float, default=0.3, help="Logo opacity (0-1)")
    p_comp.add_argument("--backdrop", default="#FFFFFF", help="Backdrop colour")
    p_comp.add_argument("-o", "--output", default="output/qr-composited.png", help="Output file path")

    p_ver = subparsers.add_parser("verify", help="Verify a QR code image")
    p_ver.add_argument("image", help="Path to QR code image")
    p_ver.add_argument("--expected", default=None, help="Expected decoded data (fails if mismatch)")

    p_pub = subparsers.add_parser("publish", help="Render and upload a QR code")
    p_pub.add_argument("url", help="URL to encode")
    p_pub.add_argument("--owner", required=True, help="Owner id (storage folder)")
    p_pub.add_argument("--slug", required=True, help="Card slug")
    _add_style_args(p_pub)

    p_add = subparsers.add_parser("add-card", help="Register a card in the local store")
    p_add.add_argument("card_id")
    p_add.add_argument("--owner", required=True)
    p_add.add_argument("--slug", required=True)
    p_add.add_argument("--share-url", default=None)
    _add_style_args(p_add)

    p_pc = subparsers.add_parser("publish-card", help="Publish a card (builds its QR code if needed)")
    p_pc.add_argument("card_id")
    p_pc.add_argument("--unpublish", action="store_true", help="Take the card offline instead")

    p_regen = subparsers.add_parser("regenerate", help="Regenerate a card's QR code")
    p_regen.add_argument("card_id")
    p_regen.add_argument("-o", "--output", default=None, help="Also save the image here (file or directory)")

    subparsers.add_parser("presets", help="List built-in style presets")

    p_serve = subparsers.add_parser("serve", help="Start the editor API server")
    p_serve.add_argument("--port", type=int, default=8080, help="Port to listen on")
    p_serve.add_argument("--debug", action="store_true", help="Enable debug mode")

    args = parser.parse_args(argv)

    level = "DEBUG" if args.verbose else get_settings().log_level
    setup_logging(level=level, log_file=args.log_file)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    commands = {
        "render": cmd_render,
        "composite": cmd_composite,
        "verify": cmd_verify,
        "publish": cmd_publish,
        "add-card": cmd_add_card,
        "publish-card": cmd_publish_card,
        "regenerate": cmd_regenerate,
        "presets": cmd_presets,
        "serve": cmd_serve,
    }
    commands[args.command](args)
    audit("cli.done", logger=log, command=args.command)


if __name__ == "__main__":
    main()
