# accounting/api/tenancy.py

"""
PATH: accounting/api/tenancy.py

REQUEST → TENANT + SERVICE ERROR MAPPING

- The tenant comes from the X-Tenant-Id header; every query in the views is
  scoped by it.
- Service errors map to HTTP:
    ValidationFault -> 400
    StateConflict   -> 409
    IntegrityFault  -> 500 (logged)
"""

from __future__ import annotations

import logging
import uuid

from django.utils.dateparse import parse_date
from drf_spectacular.utils import OpenApiParameter
from rest_framework import status
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response

from accounting.models.tenant import Tenant
from accounting.services.exceptions import IntegrityFault, StateConflict, ValidationFault

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-Id"

TENANT_PARAMETER = OpenApiParameter(
    name=TENANT_HEADER,
    type=str,
    location=OpenApiParameter.HEADER,
    required=True,
    description="Tenant UUID",
)


def resolve_tenant(request) -> Tenant:
    raw = (request.headers.get(TENANT_HEADER) or "").strip()
    if not raw:
        raise ValidationError({"detail": f"{TENANT_HEADER} header is required."})
    try:
        tenant_id = uuid.UUID(raw)
    except ValueError as exc:
        raise ValidationError({"detail": f"{TENANT_HEADER} must be a UUID."}) from exc

    tenant = Tenant.objects.filter(pk=tenant_id, is_active=True).first()
    if tenant is None:
        raise NotFound("Tenant not found.")
    return tenant


def service_error_response(exc: Exception) -> Response:
    if isinstance(exc, ValidationFault):
        return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, StateConflict):
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, IntegrityFault):
        logger.error("Integrity fault surfaced to API", extra={"error": str(exc)})
        return Response({"detail": str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    raise exc


def date_param(request, name: str, *, required: bool = True):
    raw = (request.query_params.get(name) or "").strip()
    if not raw:
        if required:
            raise ValidationError({name: "This query parameter is required (YYYY-MM-DD)."})
        return None
    d = parse_date(raw)
    if d is None:
        raise ValidationError({name: f"Invalid {name} (expected YYYY-MM-DD)"})
    return d


def uuid_param(request, name: str):
    raw = (request.query_params.get(name) or "").strip()
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError as exc:
        raise ValidationError({name: "Must be a UUID."}) from exc


def scoped_object(model, tenant, pk):
    """Fetch a tenant-owned row for a filter parameter, or reject the request."""
    if pk is None:
        return None
    obj = model.objects.filter(tenant=tenant, pk=pk).first()
    if obj is None:
        raise ValidationError({"detail": f"{model.__name__} not found for tenant."})
    return obj
