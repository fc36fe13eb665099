"""Management commands: process_recurring_billing, normalize_schedule_dates."""

from datetime import date, datetime, timezone as dt_timezone
from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from billing.models import Invoice, RecurringTemplate
from billing.recurrence import noonify

pytestmark = pytest.mark.django_db


def _run(*args):
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


class TestProcessRecurringBilling:

    def test_generates_due_invoices(self, make_template):
        make_template(start_date=date(2024, 1, 15))

        output = _run("process_recurring_billing", "--as-of", "2024-04-01")

        assert "3 invoice(s) created" in output
        assert Invoice.objects.count() == 3

    def test_organization_filter(self, other_organization, other_contact, make_template):
        make_template(start_date=date(2024, 1, 15))
        make_template(start_date=date(2024, 1, 15), organization=other_organization, contact=other_contact)

        _run("process_recurring_billing", "--as-of", "2024-01-31", "--organization", other_organization.slug)

        assert list(Invoice.objects.values_list("organization_id", flat=True)) == [other_organization.pk]

    def test_limit_reports_capped_templates(self, make_template):
        template = make_template(start_date=date(2024, 1, 15))

        output = _run("process_recurring_billing", "--as-of", "2024-04-01", "--limit", "1")

        assert f"Template {template.pk} hit the catch-up limit" in output
        assert Invoice.objects.count() == 1

    def test_failures_exit_with_error(self, make_template):
        bad = make_template(start_date=date(2024, 1, 15))
        RecurringTemplate.objects.filter(pk=bad.pk).update(frequency="FORTNIGHTLY")

        out = StringIO()
        with pytest.raises(CommandError, match="1 recurring template"):
            call_command("process_recurring_billing", "--as-of", "2024-04-01", stdout=out)
        assert f"template {bad.pk}" in out.getvalue()

    @pytest.mark.parametrize("args, message", [
        (["--as-of", "yesterday"], "Invalid --as-of"),
        (["--organization", "missing"], "not found"),
        (["--limit", "0"], "at least 1"),
    ])
    def test_bad_arguments(self, args, message):
        with pytest.raises(CommandError, match=message):
            call_command("process_recurring_billing", *args, stdout=StringIO())


class TestNormalizeScheduleDates:

    def _skew(self, template):
        off_noon = datetime(2024, 1, 15, 5, 30, tzinfo=dt_timezone.utc)
        RecurringTemplate.objects.filter(pk=template.pk).update(next_run_date=off_noon)

    def test_dry_run_changes_nothing(self, make_template):
        template = make_template(start_date=date(2024, 1, 15))
        self._skew(template)

        output = _run("normalize_schedule_dates")

        assert "RecurringTemplate: 1 row(s)" in output
        assert "Dry run" in output
        template.refresh_from_db()
        assert template.next_run_date.hour == 5

    def test_commit_repins_to_noon(self, make_template):
        template = make_template(start_date=date(2024, 1, 15))
        self._skew(template)

        _run("normalize_schedule_dates", "--commit")

        template.refresh_from_db()
        assert template.next_run_date == noonify(date(2024, 1, 15))

    def test_already_normalized_rows_are_untouched(self, make_template):
        make_template(start_date=date(2024, 1, 15))

        output = _run("normalize_schedule_dates")

        assert "RecurringTemplate: 0 row(s)" in output
