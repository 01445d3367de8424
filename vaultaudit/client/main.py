import argparse
import getpass
import logging
import sys

from vaultaudit.client.database import PasswordStore
from vaultaudit.client.notifications import NotificationOutbox, NotificationScheduler
from vaultaudit.client.preferences import SettingsStore
from vaultaudit.config import settings
from vaultaudit.core.breach import BreachCheckError, BreachChecker
from vaultaudit.core.crypto import CryptoManager
from vaultaudit.core.dashboard import SecurityDashboardService
from vaultaudit.core.models import PasswordInput
from vaultaudit.core.strength import PasswordStrengthAnalyzer

logger = logging.getLogger(__name__)


def _secret(value: str | None, prompt: str) -> str:
    return value if value is not None else getpass.getpass(prompt)


def _unlocked_store(args) -> PasswordStore:
    crypto = CryptoManager()
    store = PasswordStore(crypto, db_url=args.db)
    if not crypto.derive_key(getpass.getpass("Master password: "), store.get_kdf_salt()):
        raise SystemExit("Could not unlock the vault")
    return store


def cmd_strength(args) -> int:
    report = PasswordStrengthAnalyzer().strength_report(_secret(args.password, "Password: "), args.context)
    print(report.model_dump_json(indent=2))
    return 0


def cmd_breach(args) -> int:
    result = BreachChecker().check_password(_secret(args.password, "Password: "))
    print(result.model_dump_json(indent=2))
    return 0


def cmd_email(args) -> int:
    result = BreachChecker().check_email(args.email)
    print(result.model_dump_json(indent=2))
    return 0


def cmd_add(args) -> int:
    store = _unlocked_store(args)
    record_id = store.create(args.owner, PasswordInput(
        service=args.service,
        account=args.account,
        secret=getpass.getpass(f"Password for {args.service}: "),
        notes=args.notes,
    ))
    print(record_id)
    return 0


def cmd_dashboard(args) -> int:
    store = _unlocked_store(args)
    records = store.list_by_owner(args.owner)
    breach_checker = None if args.offline else BreachChecker()
    service = SecurityDashboardService(breach_checker=breach_checker)

    if args.notify:
        prefs = SettingsStore(args.settings_file)
        scheduler = NotificationScheduler(NotificationOutbox(engine=store.engine))
        dashboard = service.generate_and_notify(records, scheduler, prefs.notifications)
        scheduler.schedule_expiry_reminders(records, prefs.expiry)
    else:
        dashboard = service.generate(records)

    print(dashboard.model_dump_json(indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vaultaudit", description="Password security checks")
    parser.add_argument("--db", default=settings.DATABASE_URL, help="Database URL")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("strength", help="Score a password")
    p.add_argument("password", nargs="?", help="Prompted for when omitted")
    p.add_argument("--context", nargs="*", default=[], help="Service or account names to penalise")
    p.set_defaults(func=cmd_strength)

    p = sub.add_parser("breach", help="Look a password up in known breaches")
    p.add_argument("password", nargs="?", help="Prompted for when omitted")
    p.set_defaults(func=cmd_breach)

    p = sub.add_parser("email", help="Look an e-mail address up in known breaches")
    p.add_argument("email")
    p.set_defaults(func=cmd_email)

    p = sub.add_parser("add", help="Store a password")
    p.add_argument("--owner", required=True)
    p.add_argument("--service", required=True)
    p.add_argument("--account", required=True)
    p.add_argument("--notes")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("dashboard", help="Security dashboard for an owner's passwords")
    p.add_argument("--owner", required=True)
    p.add_argument("--offline", action="store_true", help="Skip breach lookups")
    p.add_argument("--notify", action="store_true", help="Queue notifications for the alerts")
    p.add_argument("--settings-file", default=settings.SETTINGS_FILE)
    p.set_defaults(func=cmd_dashboard)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except BreachCheckError as e:
        logger.error(f"Breach service unavailable: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
