from __future__ import annotations

import argparse
import base64
import binascii
import logging
import sys
from pathlib import Path

from nacl import signing

from .errors import SignerRegistryError, VerificationError
from .settings import get_settings
from .signers import SignerRegistry
from .verify.verifier import NAMESPACE, build_verifier, encode_ed25519_key


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_key(path: Path) -> signing.SigningKey:
    raw = path.read_bytes()
    if len(raw) == 32:
        return signing.SigningKey(raw)
    try:
        return signing.SigningKey(base64.b64decode(raw.strip(), validate=True))
    except (binascii.Error, ValueError):
        raise SystemExit("Unsupported key format; provide 32-byte raw or base64")


def cmd_serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    _configure_logging(settings.log_level)
    from .api.main import create_app

    try:
        app = create_app(settings)
    except SignerRegistryError as e:
        logging.critical("%s", e)
        return 1
    import uvicorn

    uvicorn.run(app, host=args.host or settings.host, port=args.port or settings.port, reload=False)
    return 0


def cmd_check(_: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        registry = SignerRegistry.load(settings.signers_file)
    except SignerRegistryError as e:
        print(str(e), file=sys.stderr)
        return 1
    principals = registry.principals()
    print(f"{registry.path}: {len(principals)} principal(s)")
    for p in principals:
        print(f"  {p}")
    return 0


def cmd_keygen(args: argparse.Namespace) -> int:
    out = Path(args.out)
    sk = signing.SigningKey.generate()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(base64.b64encode(bytes(sk)).decode())
    out.chmod(0o600)
    line = f'{args.identity} namespaces="{NAMESPACE}" ssh-ed25519 {encode_ed25519_key(bytes(sk.verify_key))}'
    Path(f"{out}.pub").write_text(line + "\n")
    print(line)
    return 0


def cmd_sign(args: argparse.Namespace) -> int:
    key = _load_key(Path(args.key))
    src = Path(args.input)
    sig = key.sign(src.read_bytes()).signature
    out = Path(args.output) if args.output else src.with_name(src.name + ".sig")
    out.write_text(base64.b64encode(sig).decode() + "\n")
    print(f"Signature written to {out}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        registry = SignerRegistry.load(settings.signers_file)
    except SignerRegistryError as e:
        print(str(e), file=sys.stderr)
        return 1
    verifier = build_verifier(
        settings.verifier, registry,
        ssh_keygen_bin=settings.ssh_keygen_bin, timeout=settings.verify_timeout_seconds,
    )
    try:
        with open(args.file, "rb") as fh:
            ok = verifier.verify(fh, Path(args.signature), args.identity)
    except VerificationError as e:
        print(f"FAIL: {e}")
        return 2
    print("OK" if ok else "FAIL")
    return 0 if ok else 2


def _parse_pair(spec: str) -> tuple[Path, Path]:
    if ":" in spec:
        f, s = spec.split(":", 1)
        return Path(f), Path(s)
    f = Path(spec)
    return f, f.with_name(f.name + ".sig")


def cmd_push(args: argparse.Namespace) -> int:
    from .client.upload import UploadRejected, upload_batch

    pairs = [_parse_pair(p) for p in args.pairs]
    try:
        body = upload_batch(args.url, args.identifier, args.directory, pairs)
    except UploadRejected as e:
        print(str(e), file=sys.stderr)
        return 1
    print(body.get("status", body))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="sigpub", description="Signed batch upload service")
    sub = p.add_subparsers(dest="cmd", required=True)

    serve_p = sub.add_parser("serve", help="Run the upload API")
    serve_p.add_argument("--host")
    serve_p.add_argument("--port", type=int)
    serve_p.set_defaults(func=cmd_serve)

    check_p = sub.add_parser("check", help="Validate the signers file and list principals")
    check_p.set_defaults(func=cmd_check)

    keygen_p = sub.add_parser("keygen", help="Generate an Ed25519 key and its allowed-signers line")
    keygen_p.add_argument("--out", required=True, help="Private key output (base64); public line goes to <out>.pub")
    keygen_p.add_argument("--identity", required=True)
    keygen_p.set_defaults(func=cmd_keygen)

    sign_p = sub.add_parser("sign", help="Write a detached Ed25519 signature for a file")
    sign_p.add_argument("--key", required=True, help="Path to 32-byte Ed25519 private key (raw or base64)")
    sign_p.add_argument("--input", required=True)
    sign_p.add_argument("--output", help="Defaults to <input>.sig")
    sign_p.set_defaults(func=cmd_sign)

    verify_p = sub.add_parser("verify", help="Verify one file with the configured verifier")
    verify_p.add_argument("--file", required=True)
    verify_p.add_argument("--signature", required=True)
    verify_p.add_argument("--identity", required=True)
    verify_p.set_defaults(func=cmd_verify)

    push_p = sub.add_parser("push", help="Upload a signed batch")
    push_p.add_argument("--url", required=True, help="Service base URL, e.g. http://localhost:8000")
    push_p.add_argument("--identifier", required=True)
    push_p.add_argument("--directory", required=True)
    push_p.add_argument("pairs", nargs="+", help="FILE[:SIGNATURE] (signature defaults to FILE.sig)")
    push_p.set_defaults(func=cmd_push)

    return p


def main(argv: list[str] | None = None) -> int:  # pragma: no cover - thin wrapper
    ns = build_parser().parse_args(argv)
    return ns.func(ns)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
