"""Command-line wrapper around the provisioning workflows.

Runs the same service as the HTTP API, against the Supabase project in the
environment (see app.config.settings).
"""
from __future__ import annotations
import argparse
import getpass
import json
import logging
import sys

from app.config import load_settings
from app.core.errors import ProvisioningBaseError
from app.core.provisioning_service import build_provisioning_service
from scripts import audit


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="League admin user provisioning")
    parser.add_argument("--operator", default="cli",
                        help="Operator identifier for audit logs (default: cli)")
    parser.add_argument("-v", "--verbose", action="store_true")

    sub = parser.add_subparsers(dest="cmd")

    sc = sub.add_parser("create-user")
    sc.add_argument("--full-name", required=True)
    sc.add_argument("--email", required=True)
    sc.add_argument("--password", help="Prompted for when omitted")
    sc.add_argument("--role-id", type=int, required=True)

    su = sub.add_parser("update-user")
    su.add_argument("--user-id", required=True)
    su.add_argument("--full-name", required=True)
    su.add_argument("--role-id", type=int, required=True)

    sd = sub.add_parser("delete-user")
    sd.add_argument("--user-id", required=True)

    sb = sub.add_parser("delete-by-roles")
    sb.add_argument("--role-id", type=int, action="append", dest="role_ids", required=True,
                    help="Repeat for several roles")

    sr = sub.add_parser("register")
    sr.add_argument("--full-name", required=True)
    sr.add_argument("--email", required=True)
    sr.add_argument("--password", help="Prompted for when omitted")

    sub.add_parser("list-roles")
    sub.add_parser("list-users")

    sa = sub.add_parser("audit", help="Show recent audit events or verify their signatures")
    sa.add_argument("--limit", type=int, default=20)
    sa.add_argument("--type", dest="event_type")
    sa.add_argument("--verify", action="store_true")
    return parser


def _show_audit(args) -> int:
    if args.verify:
        total, valid = audit.verify_audit_log()
        print(f"Audit log: {valid}/{total} events with valid signatures")
        return 0 if total == valid else 1
    for event in audit.recent_events(args.limit, args.event_type):
        status = "ok" if event.get("success") else "FAILED"
        print(f"{event.get('timestamp')} {event.get('event_type')} {event.get('subject')} "
              f"by {event.get('operator')} [{status}]")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s [%(name)s] %(message)s",
    )

    if args.cmd == "audit":
        return _show_audit(args)

    service = build_provisioning_service(load_settings())

    try:
        if args.cmd == "create-user":
            result = service.create_user({
                "full_name": args.full_name,
                "email": args.email,
                "password": args.password or getpass.getpass("Password: "),
                "role_id": args.role_id,
            }, operator=args.operator)
        elif args.cmd == "update-user":
            result = service.update_user({
                "user_id": args.user_id,
                "full_name": args.full_name,
                "role_id": args.role_id,
            }, operator=args.operator)
        elif args.cmd == "delete-user":
            result = service.delete_user({"user_id": args.user_id}, operator=args.operator)
        elif args.cmd == "delete-by-roles":
            result = service.bulk_delete_by_roles({"role_ids": args.role_ids}, operator=args.operator).to_dict()
        elif args.cmd == "register":
            result = service.register({
                "full_name": args.full_name,
                "email": args.email,
                "password": args.password or getpass.getpass("Password: "),
            })
        elif args.cmd == "list-roles":
            result = {"roles": service.list_roles()}
        else:
            result = {"users": service.list_users()}
    except ProvisioningBaseError as exc:
        print(f"[{args.cmd}] Error: {exc.message}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
