import django_filters

from modules.builds.models import Build


class BuildFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    primary = django_filters.BooleanFilter(field_name="primary")
    model_slug = django_filters.CharFilter(field_name="model_slug", lookup_expr="iexact")
    min_step = django_filters.NumberFilter(field_name="step", lookup_expr="gte")

    class Meta:
        model = Build
        fields = ["status", "primary", "model_slug", "min_step"]
