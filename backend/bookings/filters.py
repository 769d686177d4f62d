import django_filters as filters
from django.utils import timezone

from bookings.models import Booking


class OperatorBookingFilter(filters.FilterSet):
    status = filters.CharFilter(field_name="status", lookup_expr="iexact")
    renter = filters.NumberFilter(field_name="renter_id")
    vehicle_unit = filters.NumberFilter(field_name="vehicle_unit_id")
    vehicle_category = filters.NumberFilter(field_name="vehicle_category_id")
    start_at_after = filters.IsoDateTimeFilter(field_name="start_at", lookup_expr="gte")
    start_at_before = filters.IsoDateTimeFilter(field_name="start_at", lookup_expr="lte")
    account_closed = filters.BooleanFilter(
        field_name="account_closed_at", lookup_expr="isnull", exclude=True
    )
    overdue = filters.BooleanFilter(method="filter_overdue")

    class Meta:
        model = Booking
        fields = ["status", "renter", "vehicle_unit", "vehicle_category", "overdue"]

    def filter_overdue(self, queryset, name, value):
        if value is None:
            return queryset

        overdue_q = {
            "status": Booking.Status.ACTIVE,
            "end_at__lt": timezone.now(),
        }
        if value:
            return queryset.filter(**overdue_q)
        return queryset.exclude(**overdue_q)
