from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import User
from clinic.permissions import capability
from clinic.serializers.auth import UserCreateSerializer, UserUpdateSerializer
from clinic.serializers.payloads import user_payload
from clinic.services import cache
from clinic.services.users import active_doctors, create_user, deactivate_user, get_user, update_user


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability('users.manage')])
@cache.cached_response(cache.USERS)
def users(request):
    if request.method == 'GET':
        return Response([user_payload(u) for u in User.objects.order_by('name')])

    s = UserCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = create_user(request.user, **s.validated_data)
    cache.invalidate('user.create')
    return Response(user_payload(user), status=status.HTTP_201_CREATED)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, capability('users.manage')])
def user_detail(request, user_id):
    """Edit an account, or deactivate it (DELETE never removes the row)."""
    user = get_user(user_id)
    if request.method == 'DELETE':
        user = deactivate_user(request.user, user)
    else:
        s = UserUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        user = update_user(request.user, user, dict(s.validated_data))
    cache.invalidate('user.update')
    return Response(user_payload(user))


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability('doctors.list')])
@cache.cached_response(cache.DOCTORS)
def doctors(request):
    return Response([{'id': str(u.id), 'name': u.name, 'email': u.email} for u in active_doctors()])
