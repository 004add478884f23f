from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .rates import shipping_options
from .serializers import RateRequestSerializer


class ShippingRatesView(APIView):
    """Quote shipping options for a basket."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = RateRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        quote = shipping_options(data['orderItems'], dict(data['destination']))
        return Response({'success': True, **quote})
