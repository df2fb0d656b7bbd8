from __future__ import annotations

import argparse
import json
import sys

import requests

from vsr.settings import settings


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _owner(value: str) -> tuple[str, str]:
    namespace, sep, name = value.partition("/")
    if not sep or not namespace or not name:
        raise argparse.ArgumentTypeError("owner must look like <namespace>/<name>")
    return namespace, name


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Versioned Subset Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    p.add_argument("--user", default=settings.admin_user)
    p.add_argument("--password", default=settings.admin_password)
    sub = p.add_subparsers(dest="cmd", required=True)

    s_rec = sub.add_parser("reconcile", help="Create/verify override routing objects for an owner")
    s_rec.add_argument("--owner", type=_owner, required=True, help="<namespace>/<name> of the owning resource")
    s_rec.add_argument("--unique-name", required=True)
    s_rec.add_argument("--unique-version", required=True)
    s_rec.add_argument("--namespace", required=True)
    s_rec.add_argument("--host", dest="hosts", action="append", required=True, help="Service host (repeatable)")
    s_rec.add_argument("--version-label")
    s_rec.add_argument("--default-version")

    s_rel = sub.add_parser("release", help="Remove an owner from its override routing objects")
    s_rel.add_argument("--owner", type=_owner, required=True)
    s_rel.add_argument("--unique-name", required=True)
    s_rel.add_argument("--namespace", required=True)
    s_rel.add_argument("--host", dest="hosts", action="append", required=True)

    s_st = sub.add_parser("status", help="Show recorded statuses of a subset")
    s_st.add_argument("subset")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")
    auth = (args.user, args.password)
    timeout = settings.api_timeout_s

    if args.cmd == "status":
        r = requests.get(f"{base}/status/{args.subset}", timeout=timeout)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        r = requests.get(f"{base}/events", params={"limit": args.limit}, timeout=timeout)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "reconcile":
        payload = {
            "owner_namespace": args.owner[0],
            "owner_name": args.owner[1],
            "unique_name": args.unique_name,
            "unique_version": args.unique_version,
            "namespace": args.namespace,
            "service_hosts": args.hosts,
            "version_label": args.version_label,
            "default_version": args.default_version,
        }
        r = requests.post(f"{base}/overrides", json=payload, auth=auth, timeout=timeout)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "release":
        payload = {
            "owner_namespace": args.owner[0],
            "owner_name": args.owner[1],
            "unique_name": args.unique_name,
            "namespace": args.namespace,
            "service_hosts": args.hosts,
        }
        r = requests.post(f"{base}/overrides/release", json=payload, auth=auth, timeout=timeout)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
