# PATH: accounting/api/views/periods.py

"""
PATH: accounting/api/views/periods.py

ACCOUNTING PERIOD API

GET  /api/accounting/periods/           list periods for the tenant
POST /api/accounting/periods/           {period_start, period_end, name?}
POST /api/accounting/periods/close/     {period_id, notes?}
POST /api/accounting/periods/reopen/    {period_id, notes?}

Security:
- Authenticated
- Listing requires accounting.view_accountingperiod
- Creating requires accounting.add_accountingperiod
- Close / reopen require accounting.change_accountingperiod

Every transition is written to PeriodEvent by the period lock service.
"""

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounting.api.serializers import (
    AccountingPeriodSerializer,
    PeriodCreateSerializer,
    PeriodTransitionSerializer,
)
from accounting.api.tenancy import TENANT_PARAMETER, resolve_tenant, service_error_response
from accounting.models.period import AccountingPeriod
from accounting.services import period_lock
from accounting.services.exceptions import AccountingServiceError

VIEW_PERMISSION = "accounting.view_accountingperiod"
CREATE_PERMISSION = "accounting.add_accountingperiod"
TRANSITION_PERMISSION = "accounting.change_accountingperiod"


def _actor(request) -> str:
    return getattr(request.user, "username", "") or ""


class PeriodListCreateView(GenericAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = PeriodCreateSerializer

    @extend_schema(
        tags=["accounting"],
        parameters=[TENANT_PARAMETER],
        responses={200: AccountingPeriodSerializer(many=True), 403: dict},
    )
    def get(self, request, *args, **kwargs):
        if not request.user.has_perm(VIEW_PERMISSION):
            return Response(
                {"detail": "You do not have permission to view accounting periods."},
                status=status.HTTP_403_FORBIDDEN,
            )

        tenant = resolve_tenant(request)
        qs = AccountingPeriod.objects.filter(tenant=tenant).order_by("period_start")
        return Response(AccountingPeriodSerializer(qs, many=True).data)

    @extend_schema(
        tags=["accounting"],
        parameters=[TENANT_PARAMETER],
        request=PeriodCreateSerializer,
        responses={201: AccountingPeriodSerializer, 400: dict, 403: dict, 409: dict},
    )
    def post(self, request, *args, **kwargs):
        if not request.user.has_perm(CREATE_PERMISSION):
            return Response(
                {"detail": "You do not have permission to create accounting periods."},
                status=status.HTTP_403_FORBIDDEN,
            )

        tenant = resolve_tenant(request)
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            period = period_lock.create_period(
                tenant=tenant,
                period_start=data["period_start"],
                period_end=data["period_end"],
                name=data.get("name") or None,
                actor=_actor(request),
            )
        except AccountingServiceError as exc:
            return service_error_response(exc)

        return Response(AccountingPeriodSerializer(period).data, status=status.HTTP_201_CREATED)


class _PeriodTransitionView(GenericAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = PeriodTransitionSerializer

    transition = None
    denied_message = ""

    def post(self, request, *args, **kwargs):
        if not request.user.has_perm(TRANSITION_PERMISSION):
            return Response({"detail": self.denied_message}, status=status.HTTP_403_FORBIDDEN)

        tenant = resolve_tenant(request)
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            period = self.transition(
                tenant=tenant,
                period_id=data["period_id"],
                actor=_actor(request),
                notes=data.get("notes", ""),
            )
        except AccountingServiceError as exc:
            return service_error_response(exc)

        return Response(AccountingPeriodSerializer(period).data, status=status.HTTP_200_OK)


@extend_schema(
    tags=["accounting"],
    parameters=[TENANT_PARAMETER],
    request=PeriodTransitionSerializer,
    responses={200: AccountingPeriodSerializer, 400: dict, 403: dict, 409: dict},
)
class ClosePeriodView(_PeriodTransitionView):
    transition = staticmethod(period_lock.close_period)
    denied_message = "You do not have permission to close accounting periods."


@extend_schema(
    tags=["accounting"],
    parameters=[TENANT_PARAMETER],
    request=PeriodTransitionSerializer,
    responses={200: AccountingPeriodSerializer, 400: dict, 403: dict, 409: dict},
)
class ReopenPeriodView(_PeriodTransitionView):
    transition = staticmethod(period_lock.reopen_period)
    denied_message = "You do not have permission to reopen accounting periods."
