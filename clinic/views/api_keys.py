from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import capability
from clinic.serializers.auth import ApiKeyCreateSerializer
from clinic.serializers.payloads import api_key_payload
from clinic.services import cache
from clinic.services.api_keys import issue_api_key, list_api_keys, revoke_api_key


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability('api_keys.manage')])
@cache.cached_response(cache.API_KEYS)
def api_keys(request):
    """List the caller's keys, or issue a new one.

    The raw key is only present in the POST response; afterwards only its
    metadata can be read.
    """
    if request.method == 'GET':
        return Response([api_key_payload(k) for k in list_api_keys(request.user)])

    s = ApiKeyCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    api_key, raw_key = issue_api_key(request.user, s.validated_data['name'])
    cache.invalidate('api_key.create')
    payload = api_key_payload(api_key)
    payload['key'] = raw_key
    return Response(payload, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, capability('api_keys.manage')])
def revoke_key(request, key_id):
    api_key = revoke_api_key(request.user, key_id)
    cache.invalidate('api_key.revoke')
    return Response(api_key_payload(api_key))
