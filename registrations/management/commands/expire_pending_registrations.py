from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from registrations.services import expire_stale_pending


class Command(BaseCommand):
    help = "Mark pending registrations that never got a payment callback as failed (frees their spots)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--hours",
            type=int,
            default=None,
            help="Age of a pending registration, in hours, after which it expires "
                 "(default: IMPROV_PENDING_TTL_HOURS)",
        )
        parser.add_argument("--dry-run", action="store_true", help="Only count, do not write to DB")

    def handle(self, *args, **opts):
        hours = opts["hours"]
        if hours is None:
            hours = settings.IMPROV_PENDING_TTL_HOURS
        if hours <= 0:
            raise CommandError("--hours must be positive")

        older_than = timezone.now() - timedelta(hours=hours)
        expired = expire_stale_pending(older_than, dry_run=opts["dry_run"])
        total = sum(expired.values())
        details = ", ".join(f"{kind}: {count}" for kind, count in expired.items())

        if opts["dry_run"]:
            self.stdout.write(f"DRY RUN: {total} pending registration(s) older than {hours}h would expire ({details})")
            return

        self.stdout.write(self.style.SUCCESS(
            f"Expired {total} pending registration(s) older than {hours}h ({details})"
        ))
