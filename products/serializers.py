"""Serializers for the product catalog."""

from rest_framework import serializers

from .models import Category, Product, Review


class CategorySerializer(serializers.ModelSerializer):
    productCount = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'productCount', 'createdAt']

    def get_productCount(self, obj):
        count = getattr(obj, 'product_count', None)
        return count if count is not None else obj.products.count()


class ReviewSerializer(serializers.ModelSerializer):
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = Review
        fields = ['id', 'name', 'rating', 'comment', 'createdAt']


class ProductSerializer(serializers.ModelSerializer):
    """Product payload; ``category`` is written as an id and read back with its name."""

    categoryName = serializers.ReadOnlyField(source='category.name')
    discountPrice = serializers.DecimalField(
        source='discount_price', max_digits=10, decimal_places=2, required=False, allow_null=True,
    )
    numReviews = serializers.IntegerField(source='num_reviews', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'description', 'image', 'price', 'discountPrice', 'stock', 'visibility',
            'category', 'categoryName', 'rating', 'numReviews', 'createdAt', 'updatedAt',
        ]
        read_only_fields = ['rating']

    def validate(self, attrs):
        price = attrs.get('price', getattr(self.instance, 'price', None))
        discount = attrs.get('discount_price')
        if discount is not None and price is not None and discount > price:
            raise serializers.ValidationError({'discountPrice': 'Discount price cannot exceed the price.'})
        return attrs


class ProductDetailSerializer(ProductSerializer):
    reviews = ReviewSerializer(many=True, read_only=True)

    class Meta(ProductSerializer.Meta):
        fields = ProductSerializer.Meta.fields + ['reviews']
