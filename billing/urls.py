# billing/urls.py

from django.urls import path
from . import views

app_name = "billing"

urlpatterns = [
    path("<slug:org_slug>/summary/", views.financial_summary, name="financial_summary"),
    path("<slug:org_slug>/tax-summary/<int:year>/", views.tax_summary, name="tax_summary"),

    # command endpoints
    path("<slug:org_slug>/run-due/", views.run_recurring_billing, name="run_recurring_billing"),
]
