import django_filters as filters

from fleet.models import DamageReport, VehicleUnit


class VehicleUnitFilter(filters.FilterSet):
    category = filters.NumberFilter(field_name="category_id")
    status = filters.CharFilter(field_name="status", lookup_expr="iexact")
    vin = filters.CharFilter(field_name="vin", lookup_expr="icontains")
    plate_number = filters.CharFilter(field_name="plate_number", lookup_expr="icontains")
    acquired_after = filters.DateFilter(field_name="acquisition_date", lookup_expr="gte")
    acquired_before = filters.DateFilter(field_name="acquisition_date", lookup_expr="lte")

    class Meta:
        model = VehicleUnit
        fields = ["category", "status", "vin", "plate_number"]


class DamageReportFilter(filters.FilterSet):
    unit = filters.NumberFilter(field_name="unit_id")
    booking = filters.NumberFilter(field_name="booking_id")
    status = filters.CharFilter(field_name="status", lookup_expr="iexact")
    severity = filters.CharFilter(field_name="severity", lookup_expr="iexact")

    class Meta:
        model = DamageReport
        fields = ["unit", "booking", "status", "severity"]
