# subledger/api/urls.py

from django.urls import path

from subledger.api.views import AgingView, ApplyPaymentView, ControlReconciliationView, UnapplyPaymentView

urlpatterns = [
    path("reports/aging/", AgingView.as_view(), name="subledger-aging"),
    path(
        "reports/control-reconciliation/",
        ControlReconciliationView.as_view(),
        name="subledger-control-reconciliation",
    ),
    path("payments/<uuid:pk>/apply/", ApplyPaymentView.as_view(), name="payment-apply"),
    path("payments/<uuid:pk>/unapply/", UnapplyPaymentView.as_view(), name="payment-unapply"),
]
