from rest_framework import serializers


class RateItemSerializer(serializers.Serializer):
    product = serializers.IntegerField(required=False)
    qty = serializers.IntegerField(min_value=1, default=1)
    weight = serializers.DecimalField(max_digits=8, decimal_places=3, min_value=0, required=False)


class DestinationSerializer(serializers.Serializer):
    address = serializers.CharField(required=False, allow_blank=True)
    city = serializers.CharField(required=False, allow_blank=True)
    postalCode = serializers.CharField(required=False, allow_blank=True)
    country = serializers.CharField()


class RateRequestSerializer(serializers.Serializer):
    orderItems = RateItemSerializer(many=True, allow_empty=False)
    destination = DestinationSerializer()
