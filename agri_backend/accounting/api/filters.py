# accounting/api/filters.py

"""
POSTING GROUP FILTERS (django-filter)

    ?source_type=SALE
    ?source_id=<document id>
    ?crop_cycle=<uuid>
    ?posting_date_from=2026-01-01&posting_date_to=2026-03-31
    ?active=true      (not targeted by a reversal)
    ?is_reversal=true
"""

import django_filters

from accounting.models.posting_group import PostingGroup


class PostingGroupFilter(django_filters.FilterSet):
    source_type = django_filters.ChoiceFilter(choices=PostingGroup.SourceType.choices)
    source_id = django_filters.CharFilter()
    crop_cycle = django_filters.UUIDFilter(field_name="crop_cycle_id")
    posting_date_from = django_filters.DateFilter(field_name="posting_date", lookup_expr="gte")
    posting_date_to = django_filters.DateFilter(field_name="posting_date", lookup_expr="lte")
    active = django_filters.BooleanFilter(method="filter_active")
    is_reversal = django_filters.BooleanFilter(field_name="reversal_of", lookup_expr="isnull", exclude=True)

    class Meta:
        model = PostingGroup
        fields = ["source_type", "source_id", "crop_cycle"]

    def filter_active(self, queryset, name, value):
        if value is None:
            return queryset
        return queryset.active() if value else queryset.reversed()
