"""Renter-facing loyalty endpoints."""

from dataclasses import asdict

from rest_framework import generics, permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from core.cache import Entity, cached

from .config import load_points_settings
from .serializers import PointsLedgerEntrySerializer, RedemptionQuoteSerializer
from .services import points_history, quote_redemption


def _program(settings) -> dict:
    return {
        key: value if isinstance(value, bool) else str(value)
        for key, value in asdict(settings).items()
    }


class LoyaltyMeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        user = request.user

        def _build():
            return {
                "member_id": user.member_id,
                "membership_tier": user.membership_tier,
                "membership_status": user.membership_status,
                "points_balance": user.points_balance,
            }

        data = dict(cached(Entity.POINTS_ACCOUNT, user.id, "summary", _build))
        data["program"] = _program(load_points_settings())
        return Response(data)


class LoyaltyHistoryView(generics.ListAPIView):
    serializer_class = PointsLedgerEntrySerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return points_history(self.request.user)


class LoyaltyRedemptionQuoteView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = RedemptionQuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        points = min(serializer.validated_data["points"], request.user.points_balance)
        quote = quote_redemption(points, serializer.validated_data["booking_total"])
        return Response({"discount": str(quote["discount"]), "points_used": quote["points_used"]})
