"""
PATH: accounting/api/views/reports.py

ACCOUNTING REPORT API VIEWS (READ-ONLY)

GET /api/accounting/reports/trial-balance/?as_of=YYYY-MM-DD
GET /api/accounting/reports/party-summary/?date_from=&date_to=&role=&group_by=role|party&project=&crop_cycle=
GET /api/accounting/reports/role-ageing/?as_of=&crop_cycle=

Security:
- Authenticated
- Requires accounting.view_ledgerentry
- Tenant from X-Tenant-Id
"""

from __future__ import annotations

from django.utils import timezone
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounting.api.tenancy import (
    TENANT_PARAMETER,
    date_param,
    resolve_tenant,
    scoped_object,
    service_error_response,
    uuid_param,
)
from accounting.services.exceptions import AccountingServiceError
from accounting.services.party_summary_service import GROUP_BY_ROLE, party_summary
from accounting.services.role_ageing_service import role_ageing
from accounting.services.trial_balance_service import TrialBalanceService
from farm.models import CropCycle, Project

REPORT_PERMISSION = "accounting.view_ledgerentry"


def _forbidden(what: str) -> Response:
    return Response(
        {"detail": f"You do not have permission to view {what}."},
        status=status.HTTP_403_FORBIDDEN,
    )


@extend_schema(
    tags=["accounting"],
    parameters=[
        TENANT_PARAMETER,
        OpenApiParameter(name="as_of", type=str, required=False, description="YYYY-MM-DD, defaults to today."),
    ],
    responses={200: dict},
)
class TrialBalanceView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not request.user.has_perm(REPORT_PERMISSION):
            return _forbidden("trial balance")

        tenant = resolve_tenant(request)
        as_of = date_param(request, "as_of", required=False) or timezone.localdate()

        data = TrialBalanceService().generate(tenant=tenant, as_of=as_of)
        return Response(data, status=status.HTTP_200_OK)


@extend_schema(
    tags=["accounting"],
    parameters=[
        TENANT_PARAMETER,
        OpenApiParameter(name="date_from", type=str, required=True, description="YYYY-MM-DD"),
        OpenApiParameter(name="date_to", type=str, required=True, description="YYYY-MM-DD"),
        OpenApiParameter(name="role", type=str, required=False, description="HARI | LANDLORD | KAMDAR"),
        OpenApiParameter(name="group_by", type=str, required=False, description="role (default) or party"),
        OpenApiParameter(name="project", type=str, required=False, description="Project UUID"),
        OpenApiParameter(name="crop_cycle", type=str, required=False, description="Crop cycle UUID"),
    ],
    responses={200: dict, 400: dict},
)
class PartySummaryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not request.user.has_perm(REPORT_PERMISSION):
            return _forbidden("party summaries")

        tenant = resolve_tenant(request)
        qp = request.query_params

        try:
            data = party_summary(
                tenant=tenant,
                date_from=date_param(request, "date_from"),
                date_to=date_param(request, "date_to"),
                role=qp.get("role") or None,
                group_by=(qp.get("group_by") or GROUP_BY_ROLE).strip().lower(),
                project=scoped_object(Project, tenant, uuid_param(request, "project")),
                crop_cycle=scoped_object(CropCycle, tenant, uuid_param(request, "crop_cycle")),
            )
        except AccountingServiceError as exc:
            return service_error_response(exc)

        return Response(data, status=status.HTTP_200_OK)


@extend_schema(
    tags=["accounting"],
    parameters=[
        TENANT_PARAMETER,
        OpenApiParameter(name="as_of", type=str, required=False, description="YYYY-MM-DD, defaults to today."),
        OpenApiParameter(name="crop_cycle", type=str, required=False, description="Crop cycle UUID"),
    ],
    responses={200: dict},
)
class RoleAgeingView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not request.user.has_perm(REPORT_PERMISSION):
            return _forbidden("role ageing")

        tenant = resolve_tenant(request)
        data = role_ageing(
            tenant=tenant,
            as_of=date_param(request, "as_of", required=False) or timezone.localdate(),
            crop_cycle=scoped_object(CropCycle, tenant, uuid_param(request, "crop_cycle")),
        )
        return Response(data, status=status.HTTP_200_OK)
