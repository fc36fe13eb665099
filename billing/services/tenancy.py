# billing/services/tenancy.py
from ..exceptions import TenantMismatch


def get_for_organization(model, organization, pk, not_found, queryset=None):
    """
    Fetch `model` row `pk` and make sure it belongs to `organization`.

    Raises `not_found` (an exception class) if the row doesn't exist at all,
    TenantMismatch if it exists under a different organization. Rows from
    another tenant are never quietly treated as missing.
    """
    qs = queryset if queryset is not None else model.objects.all()
    try:
        obj = qs.get(pk=pk)
    except model.DoesNotExist:
        raise not_found(f"{model.__name__} {pk} not found")

    if obj.organization_id != organization.pk:
        raise TenantMismatch(
            f"{model.__name__} {pk} does not belong to organization {organization.pk}"
        )
    return obj
