"""
Recurring Billing Runner

Turns due recurring templates into invoices, catching up on every occurrence
missed since the template's next_run_date.

Key rules:
1. One transaction per occurrence. The template row is locked, the invoice
   number allocated, the invoice inserted and next_run_date advanced, then
   commit. A long backlog never holds one transaction open.
2. next_run_date only moves on commit, so re-running after a crash or a
   failure picks up exactly where the last successful occurrence left off.
3. A failing template never stops the others (run_due isolates each one).

Usage:
    runner = RecurringBillingRunner()
    result = runner.run_due()             # every tenant, as of now
    result.raise_for_failures()           # optional: PartialBatchFailure
"""

import logging
from dataclasses import dataclass, field

from django.db import transaction
from django.utils import timezone

from ..conf import billing_setting
from ..exceptions import DuplicateInvoiceNumber, PartialBatchFailure, ScheduleConflict
from ..models import (
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    RecurringStatus,
    RecurringTemplate,
    build_invoice_items,
)
from ..numbering import insert_invoice, next_invoice_number
from ..recurrence import advance, noonify, validate_recurrence
from .templates import get_template

logger = logging.getLogger(__name__)


@dataclass
class CatchUpResult:
    template_id: int
    generated: int = 0
    capped: bool = False
    error: Exception | None = None
    invoice_numbers: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TemplateFailure:
    template_id: int
    error: Exception

    def __str__(self):
        return f"template {self.template_id}: {type(self.error).__name__}: {self.error}"


@dataclass
class RunDueResult:
    processed: int = 0
    succeeded: int = 0
    generated: int = 0
    capped: list = field(default_factory=list)
    failures: list = field(default_factory=list)

    def raise_for_failures(self):
        if self.failures:
            raise PartialBatchFailure(self.failures, self.succeeded)


class RecurringBillingRunner:
    """
    Catch-up generator for recurring templates.

    Args:
        catch_up_limit: max occurrences generated per template per call
        duplicate_retries: extra attempts for an occurrence whose invoice
            number collided before the occurrence counts as failed
    """

    def __init__(self, catch_up_limit: int | None = None, duplicate_retries: int | None = None):
        if catch_up_limit is None:
            catch_up_limit = billing_setting("CATCH_UP_LIMIT")
        if duplicate_retries is None:
            duplicate_retries = billing_setting("DUPLICATE_NUMBER_RETRIES")
        self.catch_up_limit = catch_up_limit
        self.duplicate_retries = duplicate_retries

    # ------------------------------------------------------------------
    # Single template
    # ------------------------------------------------------------------

    def catch_up(self, template: RecurringTemplate, as_of=None) -> CatchUpResult:
        """
        Generate every occurrence of `template` due on or before `as_of`
        (default: today). Raises InvalidRecurrence before generating anything
        if the schedule is malformed; any later failure stops this template,
        is logged, and comes back in result.error with earlier occurrences
        left committed.
        """
        as_of = noonify(as_of or timezone.now())
        validate_recurrence(template.frequency, template.interval)

        result = CatchUpResult(template_id=template.pk)

        while result.generated < self.catch_up_limit:
            try:
                invoice = self._materialize_with_retry(template.pk, as_of)
            except Exception as e:
                logger.exception(
                    f"Recurring template {template.pk}: occurrence failed after "
                    f"{result.generated} generated: {e}"
                )
                result.error = e
                break

            if invoice is None:
                break

            result.generated += 1
            result.invoice_numbers.append(invoice.invoice_number)
        else:
            still_due = RecurringTemplate.objects.filter(
                pk=template.pk,
                status=RecurringStatus.ACTIVE,
                next_run_date__lte=as_of,
            ).exists()
            if still_due:
                result.capped = True
                logger.warning(
                    f"Recurring template {template.pk}: stopped after {self.catch_up_limit} "
                    f"occurrences with more still due; the next run continues from here"
                )

        try:
            template.refresh_from_db()
        except RecurringTemplate.DoesNotExist:
            pass

        return result

    def _materialize_with_retry(self, template_pk, as_of) -> Invoice | None:
        last_error = None
        for attempt in range(1, self.duplicate_retries + 2):
            try:
                return self._materialize_next(template_pk, as_of)
            except DuplicateInvoiceNumber as e:
                last_error = e
                logger.warning(
                    f"Recurring template {template_pk}: duplicate invoice number "
                    f"{e.invoice_number} (attempt {attempt}), retrying"
                )
        raise last_error

    def _materialize_next(self, template_pk, as_of) -> Invoice | None:
        """
        Create the invoice for the template's current next_run_date and move
        the pointer one occurrence forward. Returns None when nothing is due.
        """
        with transaction.atomic():
            template = (
                RecurringTemplate.objects
                .select_for_update()
                .select_related("organization")
                .get(pk=template_pk)
            )

            # Re-check under lock
            if template.status != RecurringStatus.ACTIVE:
                return None
            if template.next_run_date > as_of:
                return None

            issue_date = template.next_run_date

            if template.end_date is not None and issue_date > template.end_date:
                template.status = RecurringStatus.COMPLETED
                template.save(update_fields=["status", "updated_at"])
                logger.info(f"Recurring template {template.pk} is past its end date; marked completed")
                return None

            next_run = noonify(advance(issue_date, template.frequency, template.interval))

            invoice = Invoice(
                organization=template.organization,
                contact_id=template.contact_id,
                recurring_template=template,
                invoice_number=next_invoice_number(template.organization),
                status=InvoiceStatus.SENT,
                issue_date=issue_date,
                due_date=next_run,
                subtotal=template.subtotal,
                tax=template.tax,
                total=template.total,
                currency=template.currency,
                notes=template.notes,
            )
            insert_invoice(invoice)
            InvoiceItem.objects.bulk_create(build_invoice_items(invoice, template.items.all()))

            completed = template.end_date is not None and next_run > template.end_date

            # Compare-and-set on the pointer as well as the row lock.
            updated = (
                RecurringTemplate.objects
                .filter(pk=template.pk, next_run_date=issue_date, status=RecurringStatus.ACTIVE)
                .update(
                    next_run_date=next_run,
                    status=RecurringStatus.COMPLETED if completed else RecurringStatus.ACTIVE,
                    updated_at=timezone.now(),
                )
            )
            if updated != 1:
                raise ScheduleConflict(
                    f"Recurring template {template.pk} moved past {issue_date} during generation"
                )

        logger.info(
            f"Recurring template {template.pk}: created {invoice.invoice_number} "
            f"for {issue_date.date()}, next run {next_run.date()}"
            + (" (completed)" if completed else "")
        )
        return invoice

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def run_due(self, as_of=None, organization=None) -> RunDueResult:
        """
        Catch up every ACTIVE template due on or before `as_of`, across all
        organizations (or just `organization`). Safe to call as often as you
        like; templates with nothing due are untouched.
        """
        as_of = noonify(as_of or timezone.now())

        due = RecurringTemplate.objects.filter(
            status=RecurringStatus.ACTIVE,
            next_run_date__lte=as_of,
        )
        if organization is not None:
            due = due.filter(organization=organization)

        result = RunDueResult()

        for template in due.order_by("next_run_date", "id"):
            result.processed += 1
            try:
                outcome = self.catch_up(template, as_of)
            except Exception as e:
                logger.exception(f"Recurring template {template.pk} failed: {e}")
                result.failures.append(TemplateFailure(template.pk, e))
                continue

            result.generated += outcome.generated
            if outcome.capped:
                result.capped.append(template.pk)
            if outcome.error is not None:
                result.failures.append(TemplateFailure(template.pk, outcome.error))
            else:
                result.succeeded += 1

        logger.info(
            f"Recurring billing as of {as_of.date()}: processed={result.processed}, "
            f"succeeded={result.succeeded}, invoices={result.generated}, "
            f"failed={len(result.failures)}"
        )
        return result


def catch_up(template, as_of=None) -> CatchUpResult:
    return RecurringBillingRunner().catch_up(template, as_of)


def catch_up_template(organization, template_id, as_of=None) -> CatchUpResult:
    """Tenant-checked catch_up for a template id supplied by a caller."""
    template = get_template(organization, template_id)
    return RecurringBillingRunner().catch_up(template, as_of)


def run_due(as_of=None, organization=None) -> RunDueResult:
    return RecurringBillingRunner().run_due(as_of, organization)
