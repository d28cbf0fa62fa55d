from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    RequestViewSet,
    StockCheckInView,
    TransferNotificationViewSet,
    TransferViewSet,
)

router = DefaultRouter()
router.register(r'requests', RequestViewSet, basename='requests')
router.register(r'transfer-notifications', TransferNotificationViewSet, basename='transfer-notifications')
router.register(r'transfers', TransferViewSet, basename='transfers')

urlpatterns = [
    path('api/stock/check-in/', StockCheckInView.as_view(), name='stock-check-in'),
    path('api/', include(router.urls)),
]
