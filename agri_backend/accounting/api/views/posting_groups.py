# accounting/api/views/posting_groups.py

"""
PATH: accounting/api/views/posting_groups.py

POSTING GROUP API

GET  /api/accounting/posting-groups/               (django-filter filters)
GET  /api/accounting/posting-groups/{id}/
POST /api/accounting/posting-groups/{id}/reverse/  {reversal_date, reason}

Security:
- Authenticated
- Listing requires accounting.view_postinggroup
- Reversal requires accounting.add_postinggroup
- Tenant from X-Tenant-Id; nothing outside it is visible
"""

from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.viewsets import ReadOnlyModelViewSet

from accounting.api.filters import PostingGroupFilter
from accounting.api.serializers import PostingGroupSerializer, ReversePostingGroupSerializer
from accounting.api.tenancy import TENANT_PARAMETER, resolve_tenant, service_error_response
from accounting.models.posting_group import PostingGroup
from accounting.services import reversal_service
from accounting.services.exceptions import AccountingServiceError

VIEW_PERMISSION = "accounting.view_postinggroup"
REVERSE_PERMISSION = "accounting.add_postinggroup"


@extend_schema(tags=["accounting"], parameters=[TENANT_PARAMETER])
class PostingGroupViewSet(ReadOnlyModelViewSet):
    """
    Read-only access to posting groups (append-only, audit-safe), plus the
    reversal action.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = PostingGroupSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = PostingGroupFilter

    queryset = PostingGroup.objects.all()
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    def get_queryset(self):
        if not self.request.user.has_perm(VIEW_PERMISSION):
            raise PermissionDenied("You do not have permission to view posting groups.")

        tenant = resolve_tenant(self.request)
        return (
            PostingGroup.objects.for_tenant(tenant)
            .prefetch_related("ledger_entries__account", "allocation_rows")
            .order_by("-posting_date", "-created_at")
        )

    @extend_schema(
        request=ReversePostingGroupSerializer,
        responses={201: PostingGroupSerializer, 400: dict, 403: dict, 409: dict},
    )
    @action(detail=True, methods=["post"], url_path="reverse")
    def reverse(self, request, pk=None):
        if not request.user.has_perm(REVERSE_PERMISSION):
            return Response(
                {"detail": "You do not have permission to reverse postings."},
                status=status.HTTP_403_FORBIDDEN,
            )

        tenant = resolve_tenant(request)
        serializer = ReversePostingGroupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            reversal = reversal_service.reverse(
                tenant=tenant,
                posting_group_id=pk,
                reversal_date=data["reversal_date"],
                reason=data["reason"],
            )
        except AccountingServiceError as exc:
            return service_error_response(exc)

        return Response(PostingGroupSerializer(reversal).data, status=status.HTTP_201_CREATED)
