"""`modrules` command line.

Usage:
  modrules scan [ROOT] [--json]
  modrules show NAME [--root ROOT] [--format buildcs|yaml|json]
  modrules check [ROOT] [--json]
  modrules serve [--host HOST] [--port PORT]

Exit codes: 0 ok, 1 load failures / error findings, 2 unknown module or
bad configuration.
"""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from typing import List, Optional

from modrules.checks import check_index, has_errors
from modrules.config import ConfigError, get_config
from modrules.descriptor import DescriptorError, UnknownDependency, dump, dump_yaml
from modrules.log import configure_logging
from modrules.registry import scan_modules


def _cmd_scan(args: argparse.Namespace) -> int:
    index = scan_modules(args.root or get_config().scan.root)
    rows = []
    for desc in index:
        rows.append(
            {
                "name": desc.name,
                "path": str(index.path_of(desc.name)),
                "public_dependencies": len(desc.public_dependencies),
                "private_dependencies": len(desc.private_dependencies),
                "pch_usage": desc.pch_usage.value if desc.pch_usage else None,
            }
        )
    failures = [asdict(f) for f in index.failures]
    if args.json:
        print(json.dumps({"modules": rows, "failures": failures}, indent=2))
    else:
        for row in rows:
            print(
                f"{row['name']:<32} public={row['public_dependencies']:<3} "
                f"private={row['private_dependencies']:<3} {row['path']}"
            )
        for f in index.failures:
            print(f"FAILED {f.path}: {f.message}", file=sys.stderr)
    return 1 if index.failures else 0


def _cmd_show(args: argparse.Namespace) -> int:
    index = scan_modules(args.root or get_config().scan.root)
    try:
        desc = index.get(args.name)
    except UnknownDependency as e:
        print(str(e), file=sys.stderr)
        return 2
    if args.format == "yaml":
        sys.stdout.write(dump_yaml(desc))
    elif args.format == "json":
        print(json.dumps(desc.to_dict(), indent=2))
    else:
        sys.stdout.write(dump(desc))
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    index = scan_modules(args.root or get_config().scan.root)
    findings = check_index(index)
    if args.json:
        print(json.dumps([f.to_dict() for f in findings], indent=2))
    else:
        for f in findings:
            where = f"{f.module}:{f.property}" if f.property else f.module
            print(f"{f.severity.upper():<8} {f.code:<22} {where} {f.message}")
        print(f"{len(index)} modules, {len(findings)} findings")
    return 1 if has_errors(findings) else 0


def _cmd_serve(args: argparse.Namespace) -> int:  # pragma: no cover
    import uvicorn

    cfg = get_config()
    uvicorn.run(
        "modrules_api.app:app",
        host=args.host or cfg.api.host,
        port=args.port or cfg.api.port,
        reload=False,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modrules", description="Inspect module rules descriptors."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_scan = sub.add_parser("scan", help="list modules under a root")
    p_scan.add_argument("root", nargs="?")
    p_scan.add_argument("--json", action="store_true")
    p_scan.set_defaults(func=_cmd_scan)

    p_show = sub.add_parser("show", help="print one module descriptor")
    p_show.add_argument("name")
    p_show.add_argument("--root")
    p_show.add_argument(
        "--format", choices=["buildcs", "yaml", "json"], default="buildcs"
    )
    p_show.set_defaults(func=_cmd_show)

    p_check = sub.add_parser("check", help="lint module descriptors")
    p_check.add_argument("root", nargs="?")
    p_check.add_argument("--json", action="store_true")
    p_check.set_defaults(func=_cmd_check)

    p_serve = sub.add_parser("serve", help="run the read-only HTTP API")
    p_serve.add_argument("--host")
    p_serve.add_argument("--port", type=int)
    p_serve.set_defaults(func=_cmd_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        configure_logging(get_config().logging)
        return args.func(args)
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2
    except DescriptorError as e:
        print(str(e), file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
