from django.urls import path

from .api import LoyaltyHistoryView, LoyaltyMeView, LoyaltyRedemptionQuoteView

app_name = "loyalty"

urlpatterns = [
    path("me/", LoyaltyMeView.as_view(), name="me"),
    path("me/history/", LoyaltyHistoryView.as_view(), name="history"),
    path("me/redemption-quote/", LoyaltyRedemptionQuoteView.as_view(), name="redemption_quote"),
]
