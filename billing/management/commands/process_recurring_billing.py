from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from billing.models import Organization
from billing.recurrence import noonify
from billing.services.recurring_runner import RecurringBillingRunner


class Command(BaseCommand):
    help = "Generate invoices for every recurring template that is due (catching up missed periods)."

    def add_arguments(self, parser):
        parser.add_argument("--as-of", help="Treat this date (YYYY-MM-DD) as today. Default: now.")
        parser.add_argument("--organization", help="Only process templates for this organization slug.")
        parser.add_argument(
            "--limit",
            type=int,
            help="Max invoices per template in this run (default: RECURRING_BILLING['CATCH_UP_LIMIT']).",
        )

    def handle(self, *args, **options):
        as_of = None
        if options.get("as_of"):
            parsed = parse_date(options["as_of"])
            if parsed is None:
                raise CommandError(f"Invalid --as-of date: {options['as_of']!r} (expected YYYY-MM-DD)")
            as_of = noonify(parsed)

        organization = None
        slug = options.get("organization")
        if slug:
            try:
                organization = Organization.objects.get(slug=slug)
            except Organization.DoesNotExist:
                raise CommandError(f"Organization with slug '{slug}' not found.")

        limit = options.get("limit")
        if limit is not None and limit < 1:
            raise CommandError("--limit must be at least 1")

        runner = RecurringBillingRunner(catch_up_limit=limit)
        result = runner.run_due(as_of, organization=organization)

        for failure in result.failures:
            self.stdout.write(self.style.ERROR(f"FAILED {failure}"))

        for template_id in result.capped:
            self.stdout.write(self.style.WARNING(
                f"Template {template_id} hit the catch-up limit; run again to continue."
            ))

        self.stdout.write(self.style.SUCCESS(
            f"Processed {result.processed} template(s): {result.generated} invoice(s) created, "
            f"{len(result.failures)} failed."
        ))

        if result.failures:
            raise CommandError(f"{len(result.failures)} recurring template(s) failed.")
