# billing/conf.py
from django.conf import settings

DEFAULTS = {
    "CATCH_UP_LIMIT": 1000,
    "EXPANSION_LIMIT": 1000,
    "DUPLICATE_NUMBER_RETRIES": 3,
    "INVOICE_NUMBER_PREFIX": "INV-",
    "INVOICE_NUMBER_WIDTH": 4,
    "DEDUP_TOLERANCE": "0.01",
    "RECENT_INCOME_LIMIT": 20,
    "DEFAULT_CURRENCY": "USD",
}


def billing_setting(name: str):
    """
    Read one knob from settings.RECURRING_BILLING, falling back to DEFAULTS.
    Looked up on every call so override_settings works in tests.
    """
    overrides = getattr(settings, "RECURRING_BILLING", {}) or {}
    if name in overrides:
        return overrides[name]
    try:
        return DEFAULTS[name]
    except KeyError:
        raise KeyError(f"Unknown RECURRING_BILLING setting: {name!r}")
