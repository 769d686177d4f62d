"""App configuration for the bookings domain."""

from django.apps import AppConfig


class BookingsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "bookings"

    def ready(self) -> None:
        """Register cache invalidation for booking rows and the units they are rented on."""
        from core.cache import Entity, track_model

        from .models import Booking, BookingAddOn

        track_model(Booking, Entity.BOOKING, lambda booking: booking.id)
        track_model(BookingAddOn, Entity.BOOKING, lambda line: line.booking_id)
        track_model(Booking, Entity.VEHICLE_UNIT, lambda booking: booking.vehicle_unit_id)
