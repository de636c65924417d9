"""
Billing URLs - visit bills, payments, charges, rooms.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import RoomViewSet, VisitBillingViewSet

router = DefaultRouter()
router.register(r'billing', VisitBillingViewSet, basename='visit-billing')
router.register(r'rooms', RoomViewSet, basename='room')

urlpatterns = [
    path('', include(router.urls)),
]
