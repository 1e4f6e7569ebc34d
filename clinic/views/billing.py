from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import CheckIn
from clinic.permissions import capability
from clinic.serializers.billing import ClaimListQuerySerializer, ClaimUpdateSerializer, PaymentCreateSerializer
from clinic.serializers.payloads import claim_payload, payment_payload
from clinic.serializers.visits import DateQuerySerializer
from clinic.services import cache
from clinic.services.billing import get_claim, list_claims, list_payments, record_payment, update_claim
from clinic.services.patients import get_patient


def _check_in(check_in_id):
    if not check_in_id:
        return None
    check_in = CheckIn.objects.filter(pk=check_in_id).first()
    if check_in is None:
        raise ValidationError({'checkInId': ['Check-in not found.']})
    return check_in


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability('payments.view', POST='payments.create')])
@cache.cached_response(cache.PAYMENTS)
def payments(request):
    if request.method == 'GET':
        q = DateQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        return Response([payment_payload(p) for p in list_payments(q.validated_data.get('date'))])

    s = PaymentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    payment = record_payment(
        request.user,
        patient=get_patient(vd['patientId']),
        amount=vd['amount'],
        payment_method=vd['paymentMethod'],
        check_in=_check_in(vd.get('checkInId')),
    )
    cache.invalidate('payment.create')
    return Response(payment_payload(payment), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('claims.manage')])
@cache.cached_response(cache.CLAIMS)
def claims(request):
    """Medical aid claims, newest first, optionally filtered by ``?status=``."""
    q = ClaimListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response([claim_payload(c) for c in list_claims(q.validated_data.get('status'))])


@api_view(['PUT'])
@permission_classes([IsAuthenticated, capability('claims.manage')])
def claim_detail(request, claim_id):
    s = ClaimUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    claim = update_claim(
        request.user,
        get_claim(claim_id),
        status=vd.get('status'),
        claim_amount=vd.get('claimAmount'),
        notes=vd.get('notes'),
    )
    cache.invalidate('claim.update')
    return Response(claim_payload(claim))
