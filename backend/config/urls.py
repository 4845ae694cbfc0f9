from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from bookings.api import BookingViewSet
from payments.api import PaymentHistoryView, PaymentIntentView, PaymentWebhookView

router = DefaultRouter()
router.register(r"bookings", BookingViewSet, basename="booking")

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/token/", TokenObtainPairView.as_view(), name="auth-token"),
    path("api/auth/token/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path("api/", include(router.urls)),
    path(
        "api/payments/create-intent/",
        PaymentIntentView.as_view(),
        name="payment-create-intent",
    ),
    path("api/payments/history/", PaymentHistoryView.as_view(), name="payment-history"),
    path("api/webhooks/payments/", PaymentWebhookView.as_view(), name="payment-webhook"),
]
