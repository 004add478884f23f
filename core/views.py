from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsAdmin


class MetricsView(APIView):
    """Snapshot of the request metrics collected by ``RequestMetricsMiddleware``."""

    permission_classes = [IsAuthenticated, IsAdmin]

    def get(self, request):
        return Response({'success': True, 'metrics': request.metrics.snapshot()})
