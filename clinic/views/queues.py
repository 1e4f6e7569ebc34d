"""
Patient queue endpoints.

Entries are served highest priority first, then in arrival order.  A
status change is a compare-and-set against the status the caller last
saw, so two requests racing to call in (or complete) the same entry
cannot both win: the loser receives 409 ``invalid_transition``.
Completed entries are terminal.  There is no delete; an entry leaves
the active queue only by being completed.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import capability
from clinic.serializers.payloads import queue_entry_payload
from clinic.serializers.visits import QueueListQuerySerializer, QueueStatusSerializer, QueueUpdateSerializer
from clinic.services import cache
from clinic.services.queue import active_queue, doctor_by_id, get_entry, next_entry, transition, update_entry


def _doctor_filter(request):
    q = QueueListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return q.validated_data.get('doctorId')


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('queue.view')])
@cache.cached_response(cache.QUEUE)
def queue_list(request):
    """Waiting and in-progress entries, optionally for one doctor (``?doctorId=``)."""
    return Response([queue_entry_payload(e) for e in active_queue(_doctor_filter(request))])


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('queue.view')])
@cache.cached_response(cache.QUEUE)
def queue_next(request):
    entry = next_entry(_doctor_filter(request))
    return Response({'next': queue_entry_payload(entry) if entry else None})


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, capability('queue.view', PUT='queue.edit')])
@cache.cached_response(cache.QUEUE)
def queue_detail(request, entry_id):
    if request.method == 'GET':
        return Response(queue_entry_payload(get_entry(entry_id), with_history=True))

    s = QueueUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    entry = update_entry(
        entry_id,
        operator=request.user,
        priority=vd.get('priority'),
        estimated_wait_time=vd.get('estimatedWaitTime'),
        doctor=doctor_by_id(vd['doctorId']) if 'doctorId' in vd else None,
    )
    cache.invalidate('queue.update')
    return Response(queue_entry_payload(entry, with_history=True))


@api_view(['PUT'])
@permission_classes([IsAuthenticated, capability('queue.transition')])
def queue_status(request, entry_id):
    """Move an entry along waiting -> in_progress -> completed."""
    s = QueueStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    entry = transition(entry_id, s.validated_data['status'], operator=request.user)
    cache.invalidate('queue.transition')
    return Response(queue_entry_payload(entry, with_history=True))
