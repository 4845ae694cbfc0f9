from django.conf import settings
from django.core.management.base import BaseCommand

from payments.services.webhooks import retry_failed_events


class Command(BaseCommand):
    help = "Reprocess payment provider events that failed or were never processed."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=100)
        parser.add_argument(
            "--max-attempts",
            type=int,
            default=settings.PAYMENT_EVENT_MAX_ATTEMPTS,
            help="Skip events that have already been attempted this many times.",
        )

    def handle(self, *args, **options):
        results = retry_failed_events(max_attempts=options["max_attempts"], limit=options["limit"])
        if not results:
            self.stdout.write("No payment events to retry.")
            return
        for outcome, count in sorted(results.items()):
            self.stdout.write(f"{outcome}: {count}")
        self.stdout.write(self.style.SUCCESS("Payment event retry finished."))
