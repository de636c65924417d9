"""
Core views - current user profile.
"""
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.actor import get_request_actor
from .serializers import UserProfileSerializer


class CurrentUserView(APIView):
    """
    GET /api/auth/me/

    Profile of the authenticated user: roles, the permissions they grant and
    the authoring variant clinical writes will run under. The backend stays
    the authorization authority; the frontend only uses this to shape the UI.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        actor = get_request_actor(request)

        profile_data = {
            'id': user.id,
            'email': user.email,
            'display_name': user.display_name,
            'is_active': user.is_active,
            'roles': sorted(actor.roles),
            'permissions': sorted(actor.permissions),
            'author_role': actor.author_role.value,
        }

        serializer = UserProfileSerializer(profile_data)
        return Response(serializer.data, status=status.HTTP_200_OK)
