# accounting/api/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from accounting.api.views.periods import ClosePeriodView, PeriodListCreateView, ReopenPeriodView
from accounting.api.views.posting_groups import PostingGroupViewSet
from accounting.api.views.reports import PartySummaryView, RoleAgeingView, TrialBalanceView

router = DefaultRouter()
router.register("posting-groups", PostingGroupViewSet, basename="posting-group")

urlpatterns = [
    # Router endpoints
    path("", include(router.urls)),
    # Reports
    path("reports/trial-balance/", TrialBalanceView.as_view(), name="trial-balance"),
    path("reports/party-summary/", PartySummaryView.as_view(), name="party-summary"),
    path("reports/role-ageing/", RoleAgeingView.as_view(), name="role-ageing"),
    # Period gate
    path("periods/", PeriodListCreateView.as_view(), name="periods"),
    path("periods/close/", ClosePeriodView.as_view(), name="period-close"),
    path("periods/reopen/", ReopenPeriodView.as_view(), name="period-reopen"),
]
