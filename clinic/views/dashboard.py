"""
Front desk dashboard, business insights and the administrator's activity log.
"""
from __future__ import annotations

from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import ActivityLog
from clinic.permissions import capability
from clinic.serializers.billing import ActivityLogQuerySerializer, MonthlyStatsQuerySerializer
from clinic.serializers.payloads import activity_payload
from clinic.services import cache, insights
from clinic.services.dashboard import dashboard_stats


def _today(request) -> str:
    return timezone.localdate().isoformat()


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('dashboard.view')])
@cache.cached_response(cache.DASHBOARD, vary=_today)
def dashboard(request):
    return Response(dashboard_stats())


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('insights.view')])
def monthly_stats(request):
    q = MonthlyStatsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response(insights.monthly_stats(q.validated_data['months']))


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('insights.view')])
def patient_retention(request):
    return Response(insights.patient_retention_stats())


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('insights.view')])
def peak_hours(request):
    return Response(insights.peak_hours_analysis())


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('activity_logs.view')])
def activity_logs(request):
    """Most recent audit entries first; ``?limit=`` caps the page (default 100)."""
    q = ActivityLogQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    logs = ActivityLog.objects.select_related('user')[: q.validated_data['limit']]
    return Response([activity_payload(log) for log in logs])
