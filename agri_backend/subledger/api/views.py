# subledger/api/views.py

"""
PATH: subledger/api/views.py

SUBLEDGER API (AR / AP)

GET  /api/subledger/reports/aging/?ledger=AR&as_of=YYYY-MM-DD[&party=&crop_cycle=]
GET  /api/subledger/reports/control-reconciliation/?ledger=AR&as_of=YYYY-MM-DD
POST /api/subledger/payments/{id}/apply/    {mode?, allocation_date?, allocations?}
POST /api/subledger/payments/{id}/unapply/  {allocation_ids?}

Security:
- Authenticated
- Reports require subledger.view_invoice
- Application requires subledger.add_paymentallocation
- Tenant from X-Tenant-Id
"""

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounting.api.tenancy import (
    TENANT_PARAMETER,
    date_param,
    resolve_tenant,
    scoped_object,
    service_error_response,
    uuid_param,
)
from accounting.services.exceptions import AccountingServiceError
from farm.models import CropCycle, Party
from subledger.api.serializers import (
    ApplyPaymentSerializer,
    PaymentAllocationSerializer,
    UnapplyPaymentSerializer,
)
from subledger.models import Ledger, Payment
from subledger.services.aging_service import aging_report
from subledger.services.allocation_service import apply_payment, unapply_payment
from subledger.services.control_reconciliation_service import reconcile

REPORT_PERMISSION = "subledger.view_invoice"
APPLY_PERMISSION = "subledger.add_paymentallocation"

LEDGER_PARAMETER = OpenApiParameter(
    name="ledger",
    type=str,
    location=OpenApiParameter.QUERY,
    required=True,
    enum=list(Ledger.values),
)
AS_OF_PARAMETER = OpenApiParameter(
    name="as_of",
    type=str,
    location=OpenApiParameter.QUERY,
    required=True,
    description="YYYY-MM-DD",
)


def _ledger_param(request) -> str:
    ledger = (request.query_params.get("ledger") or "").strip().upper()
    if ledger not in Ledger.values:
        raise ValidationError({"ledger": f"Must be one of {', '.join(Ledger.values)}."})
    return ledger


def _payment(tenant, pk) -> Payment:
    payment = Payment.objects.filter(tenant=tenant, pk=pk).first()
    if payment is None:
        raise NotFound("Payment not found.")
    return payment


def _forbidden(message: str) -> Response:
    return Response({"detail": message}, status=status.HTTP_403_FORBIDDEN)


class AgingView(GenericAPIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=["subledger"],
        parameters=[
            TENANT_PARAMETER,
            LEDGER_PARAMETER,
            AS_OF_PARAMETER,
            OpenApiParameter(name="party", type=str, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="crop_cycle", type=str, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={200: dict, 400: dict, 403: dict},
    )
    def get(self, request, *args, **kwargs):
        if not request.user.has_perm(REPORT_PERMISSION):
            return _forbidden("You do not have permission to view aging reports.")

        tenant = resolve_tenant(request)
        ledger = _ledger_param(request)
        as_of = date_param(request, "as_of")
        party = scoped_object(Party, tenant, uuid_param(request, "party"))
        crop_cycle = scoped_object(CropCycle, tenant, uuid_param(request, "crop_cycle"))

        try:
            data = aging_report(tenant=tenant, ledger=ledger, as_of=as_of, party=party, crop_cycle=crop_cycle)
        except AccountingServiceError as exc:
            return service_error_response(exc)
        return Response(data, status=status.HTTP_200_OK)


class ControlReconciliationView(GenericAPIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=["subledger"],
        parameters=[TENANT_PARAMETER, LEDGER_PARAMETER, AS_OF_PARAMETER],
        responses={200: dict, 400: dict, 403: dict},
    )
    def get(self, request, *args, **kwargs):
        if not request.user.has_perm(REPORT_PERMISSION):
            return _forbidden("You do not have permission to view reconciliations.")

        tenant = resolve_tenant(request)
        ledger = _ledger_param(request)
        as_of = date_param(request, "as_of")

        try:
            data = reconcile(tenant=tenant, ledger=ledger, as_of=as_of)
        except AccountingServiceError as exc:
            return service_error_response(exc)
        return Response(data, status=status.HTTP_200_OK)


class ApplyPaymentView(GenericAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = ApplyPaymentSerializer

    @extend_schema(
        tags=["subledger"],
        parameters=[TENANT_PARAMETER],
        request=ApplyPaymentSerializer,
        responses={201: PaymentAllocationSerializer(many=True), 400: dict, 403: dict, 409: dict},
    )
    def post(self, request, pk=None, *args, **kwargs):
        if not request.user.has_perm(APPLY_PERMISSION):
            return _forbidden("You do not have permission to apply payments.")

        tenant = resolve_tenant(request)
        payment = _payment(tenant, pk)
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        allocations = [
            {"invoice_id": str(a["invoice_id"]), "amount": a["amount"]} for a in data.get("allocations", [])
        ]
        try:
            created = apply_payment(
                payment=payment,
                mode=data.get("mode"),
                allocations=allocations,
                allocation_date=data.get("allocation_date"),
            )
        except AccountingServiceError as exc:
            return service_error_response(exc)

        return Response(PaymentAllocationSerializer(created, many=True).data, status=status.HTTP_201_CREATED)


class UnapplyPaymentView(GenericAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = UnapplyPaymentSerializer

    @extend_schema(
        tags=["subledger"],
        parameters=[TENANT_PARAMETER],
        request=UnapplyPaymentSerializer,
        responses={200: dict, 400: dict, 403: dict},
    )
    def post(self, request, pk=None, *args, **kwargs):
        if not request.user.has_perm(APPLY_PERMISSION):
            return _forbidden("You do not have permission to unapply payments.")

        tenant = resolve_tenant(request)
        payment = _payment(tenant, pk)
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            voided = unapply_payment(payment=payment, allocation_ids=serializer.validated_data.get("allocation_ids"))
        except AccountingServiceError as exc:
            return service_error_response(exc)

        return Response({"payment_id": str(payment.pk), "voided": voided}, status=status.HTTP_200_OK)
