"""
Recurring template lifecycle: create, pause, resume, cancel.

Status changes never touch next_run_date. Resuming a paused template leaves
the pointer where it was, so the next runner pass catches up everything that
fell due while it was paused.
"""

import logging
from decimal import Decimal

from django.db import transaction

from ..exceptions import BillingError, TemplateNotFound, TemplateStateError, TenantMismatch
from ..models import RecurringStatus, RecurringTemplate, RecurringTemplateItem
from ..recurrence import noonify, validate_recurrence
from .tenancy import get_for_organization

logger = logging.getLogger(__name__)

# target status -> statuses it may be reached from
_TRANSITIONS = {
    RecurringStatus.PAUSED: {RecurringStatus.ACTIVE},
    RecurringStatus.ACTIVE: {RecurringStatus.PAUSED},
    RecurringStatus.CANCELLED: {RecurringStatus.ACTIVE, RecurringStatus.PAUSED},
}


def get_template(organization, template_id) -> RecurringTemplate:
    return get_for_organization(RecurringTemplate, organization, template_id, TemplateNotFound)


@transaction.atomic
def create_recurring_template(
    organization,
    contact,
    name: str,
    frequency,
    interval: int,
    start_date,
    items,
    end_date=None,
    tax=Decimal("0.00"),
    notes: str = "",
) -> RecurringTemplate:
    """
    Create an ACTIVE template whose first occurrence is start_date.

    items: iterable of dicts with description, quantity, unit_price.
    """
    frequency = validate_recurrence(frequency, interval)

    if contact.organization_id != organization.pk:
        raise TenantMismatch(f"Contact {contact.pk} does not belong to organization {organization.pk}")

    items = list(items)
    if not items:
        raise BillingError("A recurring template needs at least one line item.")

    start_date = noonify(start_date)
    end_date = noonify(end_date)
    if end_date is not None and end_date < start_date:
        raise BillingError("End date cannot be before the start date.")

    template = RecurringTemplate.objects.create(
        organization=organization,
        contact=contact,
        name=name,
        frequency=frequency,
        interval=interval,
        start_date=start_date,
        next_run_date=start_date,
        end_date=end_date,
        status=RecurringStatus.ACTIVE,
        tax=Decimal(str(tax)),
        currency=organization.currency,
        notes=notes,
    )

    for n, item in enumerate(items, start=1):
        RecurringTemplateItem.objects.create(
            template=template,
            line_number=n,
            description=item["description"],
            quantity=Decimal(str(item.get("quantity", 1))),
            unit_price=Decimal(str(item.get("unit_price", 0))),
        )

    template.recompute_totals_from_items()
    template.save(update_fields=["subtotal", "total", "updated_at"])

    logger.info(f"Created recurring template {template.pk} ({template.name}) for organization {organization.pk}")
    return template


@transaction.atomic
def _set_status(organization, template_id, target: RecurringStatus) -> RecurringTemplate:
    get_template(organization, template_id)
    template = RecurringTemplate.objects.select_for_update().get(pk=template_id)

    if template.status == target:
        return template

    if template.status not in _TRANSITIONS[target]:
        raise TemplateStateError(
            f"Cannot move recurring template {template.pk} from {template.status} to {target}"
        )

    template.status = target
    template.save(update_fields=["status", "updated_at"])
    logger.info(f"Recurring template {template.pk} is now {target}")
    return template


def pause_template(organization, template_id) -> RecurringTemplate:
    return _set_status(organization, template_id, RecurringStatus.PAUSED)


def resume_template(organization, template_id) -> RecurringTemplate:
    return _set_status(organization, template_id, RecurringStatus.ACTIVE)


def cancel_template(organization, template_id) -> RecurringTemplate:
    return _set_status(organization, template_id, RecurringStatus.CANCELLED)
