#!/usr/bin/env python3
"""
Licensing CLI

Usage:
    licensing [--config FILE] [-v] <command> [options]

Commands:
    keygen      Generate an EC key pair (PEM)
    issue       Build and sign a license from a YAML manifest
    verify      Verify a license document (exit 0 valid, 2 invalid)
    show        Print the fields of a license document as JSON or YAML

Manifest example (all keys optional):

    id: 4f6a3c1e-9b5d-4c4e-8a55-2f0b1a7d9e10
    type: Standard
    quantity: 5
    customer:
      name: Jane Doe
      email: jane@example.com
    expiration: 2030-01-01T00:00:00Z
    version: 1
    product_features:
      seats: "5"
    additional_attributes:
      region: eu
    sublicenses:
      - child.lic.xml          # relative to the manifest
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from licensing import __version__
from licensing.builder import LicenseBuilder
from licensing.canonical import format_rfc1123, parse_rfc1123
from licensing.config import LicensingConfig
from licensing.errors import LicensingError
from licensing.keys import generate_key_pair, public_key_to_base64_der
from licensing.model import LicenseRecord
from licensing.signing import signing_input
from licensing.validation import iter_sublicenses, validate_license

logger = logging.getLogger(__name__)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    return json.dumps(data, indent=2, default=str)


# =============================================================================
# Helpers
# =============================================================================

def _settings(args: argparse.Namespace) -> LicensingConfig:
    settings = getattr(args, "settings", None)
    if settings is None:
        settings = LicensingConfig.load(getattr(args, "config", None) or None)
        args.settings = settings
    return settings


def _read_text(path: pathlib.Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as ex:
        raise CLIError(f"cannot read {path}: {ex}") from ex


def _private_key_path(args: argparse.Namespace) -> pathlib.Path:
    key = getattr(args, "key", "") or _settings(args).keys.private_key_path.get()
    if not key:
        raise CLIError("no private key given (use --key or LICENSING_PRIVATE_KEY)")
    return pathlib.Path(key)


def _public_key_path(args: argparse.Namespace) -> pathlib.Path:
    key = getattr(args, "key", "") or _settings(args).keys.public_key_path.get()
    if not key:
        raise CLIError("no public key given (use --key or LICENSING_PUBLIC_KEY)")
    return pathlib.Path(key)


def _passphrase(args: argparse.Namespace) -> Optional[str]:
    return getattr(args, "passphrase", "") or _settings(args).keys.passphrase.get() or None


def _parse_expiration(value: Any) -> datetime:
    """Manifest expiration: a YAML timestamp/date, ISO 8601 or RFC-1123 text."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return parse_rfc1123(text)
    raise CLIError(f"unsupported expiration value: {value!r}")


def _str_map(name: str, value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        raise CLIError(f"manifest {name} must be a mapping")
    return {str(k): str(v) for k, v in value.items()}


def builder_from_manifest(manifest: Dict[str, Any], base_dir: pathlib.Path) -> LicenseBuilder:
    """Translate a manifest mapping into a populated builder.

    A missing ``id`` gets a fresh random UUID. Sub-license entries are paths to
    persisted license documents, resolved against `base_dir`.
    """
    builder = LicenseRecord.new()
    builder.with_unique_identifier(str(manifest.get("id") or uuid.uuid4()))

    if manifest.get("type") is not None:
        builder.of_kind(str(manifest["type"]))
    if manifest.get("quantity") is not None:
        builder.with_maximum_utilization(int(manifest["quantity"]))
    if manifest.get("version") is not None:
        builder.with_version(int(manifest["version"]))
    if manifest.get("expiration") is not None:
        builder.expires_at(_parse_expiration(manifest["expiration"]))

    customer = manifest.get("customer")
    if customer is not None:
        if not isinstance(customer, dict):
            raise CLIError("manifest customer must be a mapping with name/email")
        name = customer.get("name")
        email = customer.get("email")
        builder.licensed_to(
            str(name) if name is not None else None,
            str(email) if email is not None else None,
        )

    if manifest.get("product_features"):
        builder.with_product_features(_str_map("product_features", manifest["product_features"]))
    if manifest.get("additional_attributes"):
        builder.with_additional_attributes(_str_map("additional_attributes", manifest["additional_attributes"]))

    for entry in manifest.get("sublicenses") or []:
        sub_path = pathlib.Path(str(entry))
        if not sub_path.is_absolute():
            sub_path = base_dir / sub_path
        builder.add_sublicense(LicenseRecord.load(_read_text(sub_path)))

    return builder


def record_to_dict(record: LicenseRecord) -> Dict[str, Any]:
    """Plain-data view of a record for display."""
    return {
        "id": str(record.id),
        "type": record.kind.value,
        "quantity": record.quantity,
        "customer": None if record.customer is None else {
            "name": record.customer.name,
            "email": record.customer.email,
        },
        "expiration": None if record.expiration is None else format_rfc1123(record.expiration),
        "version": record.version,
        "product_features": dict(record.product_features or {}),
        "additional_attributes": dict(record.additional_attributes or {}),
        "signed": record.is_signed,
        "sublicenses": [record_to_dict(sub) for sub in record.sublicenses],
    }


# =============================================================================
# Commands
# =============================================================================

def cmd_keygen(args: argparse.Namespace) -> int:
    """Generate a key pair and print the public key as base64 DER."""
    pair = generate_key_pair(passphrase=_passphrase(args))
    pair.write(args.private_out, args.public_out)
    print(public_key_to_base64_der(pair.public_pem))
    return 0


def cmd_issue(args: argparse.Namespace) -> int:
    manifest_path = pathlib.Path(args.manifest)
    try:
        manifest = yaml.safe_load(_read_text(manifest_path)) or {}
    except yaml.YAMLError as ex:
        raise CLIError(f"invalid manifest {manifest_path}: {ex}") from ex
    if not isinstance(manifest, dict):
        raise CLIError(f"manifest root must be a mapping: {manifest_path}")

    builder = builder_from_manifest(manifest, manifest_path.parent)
    private_pem = _read_text(_private_key_path(args))
    record = builder.create_and_sign(private_pem, _passphrase(args))

    pretty = _settings(args).output.pretty.get() and not getattr(args, "compact", False)
    text = record.to_xml(pretty=pretty)
    out = getattr(args, "out", "") or ""
    if out:
        out_path = pathlib.Path(out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        logger.info(f"wrote license id={record.id} to {out_path}")
    else:
        sys.stdout.write(text)
    print(record.id, file=sys.stderr)
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    record = LicenseRecord.load(_read_text(pathlib.Path(args.license)))
    public_pem = _read_text(_public_key_path(args))

    targets = [("", record)]
    if getattr(args, "sublicenses", False):
        targets.extend(iter_sublicenses(record))

    ok = True
    for path, rec in targets:
        label = f"{rec.id}" if not path else f"{rec.id} (sublicense {path})"
        failures = validate_license(rec, public_pem)
        if failures:
            ok = False
            for f in failures:
                print("FAIL", label, "-", f"{f.code}: {f.message}")
        else:
            print("OK  ", label)
    return 0 if ok else 2


def cmd_show(args: argparse.Namespace) -> int:
    record = LicenseRecord.load(_read_text(pathlib.Path(args.license)))
    data = record_to_dict(record)
    if getattr(args, "signing_input", False):
        data["signing_input"] = signing_input(record).decode("utf-8")
    print(format_output(data, OutputFormat(getattr(args, "format", "json") or "json")))
    return 0


# =============================================================================
# Entry point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="licensing", description="Issue and verify signed licenses.")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--config", default="", help="Path to a licensing.yaml configuration file")
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    k = sub.add_parser("keygen", help="Generate an EC key pair")
    k.add_argument("--private-out", required=True, help="Output path for the PEM private key")
    k.add_argument("--public-out", required=True, help="Output path for the PEM public key")
    k.add_argument("--passphrase", default="", help="Encrypt the private key with this passphrase")
    k.set_defaults(func=cmd_keygen)

    i = sub.add_parser("issue", help="Build and sign a license from a YAML manifest")
    i.add_argument("manifest", help="Path to the license manifest (YAML)")
    i.add_argument("--key", default="", help="PEM private key (default: keys.private_key_path)")
    i.add_argument("--passphrase", default="", help="Private key passphrase")
    i.add_argument("--out", default="", help="Output path (default: stdout)")
    i.add_argument("--compact", action="store_true", help="Write without indentation")
    i.set_defaults(func=cmd_issue)

    v = sub.add_parser("verify", help="Verify a license document")
    v.add_argument("license", help="Path to the license document")
    v.add_argument("--key", default="", help="PEM public key (default: keys.public_key_path)")
    v.add_argument("--sublicenses", action="store_true", help="Also check each nested sub-license")
    v.set_defaults(func=cmd_verify)

    s = sub.add_parser("show", help="Print license fields")
    s.add_argument("license", help="Path to the license document")
    s.add_argument("--format", choices=[f.value for f in OutputFormat], default="json")
    s.add_argument("--signing-input", action="store_true", help="Include the signed bytes")
    s.set_defaults(func=cmd_show)

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = _settings(args)
        level = logging.DEBUG if args.verbose else settings.observability.python_level()
        logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
        return args.func(args)
    except CLIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except (LicensingError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
