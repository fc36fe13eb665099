# billing/views.py

import logging
from dataclasses import asdict
from datetime import MAXYEAR, MINYEAR

from django.contrib.admin.views.decorators import staff_member_required
from django.core.serializers.json import DjangoJSONEncoder
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from django.views.decorators.http import require_GET, require_POST

from .models import Organization
from .recurrence import noonify
from .services.reconciliation import summarize
from .services.recurring_runner import run_due
from .services.tax_summary import tax_year_summary

logger = logging.getLogger(__name__)


def _json(data, status=200):
    return JsonResponse(data, status=status, encoder=DjangoJSONEncoder)


@staff_member_required
@require_GET
def financial_summary(request, org_slug):
    """
    P&L for ?start=YYYY-MM-DD&end=YYYY-MM-DD.

    An empty period comes back as a normal 200 with zeros; a failed
    computation is a 500 with an "error" key and no figures.
    """
    organization = get_object_or_404(Organization, slug=org_slug)

    start = parse_date(request.GET.get("start") or "")
    end = parse_date(request.GET.get("end") or "")
    if start is None or end is None:
        return _json({"error": "start and end are required (YYYY-MM-DD)."}, status=400)
    if end < start:
        return _json({"error": "end must not be before start."}, status=400)

    try:
        summary = summarize(organization, start, end)
    except Exception as e:
        logger.exception(f"Financial summary failed for {org_slug} {start}..{end}: {e}")
        return _json({"error": "Could not compute the financial summary."}, status=500)

    data = summary.as_dict()
    data["has_activity"] = summary.has_activity
    return _json(data)


@staff_member_required
@require_GET
def tax_summary(request, org_slug, year):
    organization = get_object_or_404(Organization, slug=org_slug)
    if not MINYEAR <= year <= MAXYEAR:
        return _json({"error": f"year must be between {MINYEAR} and {MAXYEAR}."}, status=400)
    try:
        summary = tax_year_summary(organization, year)
    except Exception as e:
        logger.exception(f"Tax summary failed for {org_slug} {year}: {e}")
        return _json({"error": "Could not compute the tax summary."}, status=500)
    return _json(asdict(summary))


@staff_member_required
@require_POST
def run_recurring_billing(request, org_slug):
    organization = get_object_or_404(Organization, slug=org_slug)

    as_of_raw = (request.POST.get("as_of") or "").strip()
    as_of = None
    if as_of_raw:
        as_of = parse_date(as_of_raw)
        if as_of is None:
            return _json({"error": f"Invalid as_of date: {as_of_raw!r}"}, status=400)

    result = run_due(noonify(as_of) if as_of else None, organization=organization)

    return _json({
        "processed": result.processed,
        "succeeded": result.succeeded,
        "generated": result.generated,
        "capped": result.capped,
        "failures": [
            {"template_id": f.template_id, "error": f"{type(f.error).__name__}: {f.error}"}
            for f in result.failures
        ],
    })
