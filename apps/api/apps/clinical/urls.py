"""
Clinical URLs - records, diagnoses, prescriptions, procedures, vitals, discharge summaries.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    DiagnosisViewSet,
    DischargeSummaryViewSet,
    MedicalRecordViewSet,
    PrescriptionViewSet,
    ProcedureViewSet,
    VitalSignsViewSet,
)

router = DefaultRouter()
router.register(r'records', MedicalRecordViewSet, basename='medical-record')
router.register(r'diagnoses', DiagnosisViewSet, basename='diagnosis')
router.register(r'prescriptions', PrescriptionViewSet, basename='prescription')
router.register(r'procedures', ProcedureViewSet, basename='procedure')
router.register(r'vitals', VitalSignsViewSet, basename='vital-signs')
router.register(r'discharge-summaries', DischargeSummaryViewSet, basename='discharge-summary')

urlpatterns = [
    path('', include(router.urls)),
]
