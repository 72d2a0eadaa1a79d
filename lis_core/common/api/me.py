# lis_core/common/api/me.py
from __future__ import annotations

from dataclasses import asdict

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from lis_core.common.permissions import _user_roles, request_capabilities


class MeView(APIView):
    """Signed-in user plus the capabilities the UI should enable."""
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Auth"], responses={200: OpenApiTypes.OBJECT})
    def get(self, request):
        return Response(
            {
                "user": {
                    "id": request.user.id,
                    "username": getattr(request.user, "username", None),
                    "email": getattr(request.user, "email", None),
                    "is_superuser": bool(getattr(request.user, "is_superuser", False)),
                },
                "roles": sorted(_user_roles(request.user)),
                "capabilities": asdict(request_capabilities(request)),
            },
            status=status.HTTP_200_OK,
        )
