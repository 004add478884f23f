"""Products API views.

Public read access to visible products and categories; writes are limited
to admins and product managers. Filtering/search/ordering/pagination are
provided for list endpoints.
"""

import logging

from django.db.models import Count
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, viewsets

from accounts.permissions import IsAdminOrReadOnly, can_manage_catalog

from .filters import ProductFilter
from .models import Category, Product
from .serializers import CategorySerializer, ProductDetailSerializer, ProductSerializer

logger = logging.getLogger(__name__)


class ProductViewSet(viewsets.ModelViewSet):
    """Products CRUD.

    - Public users: read visible products only.
    - Admins / product managers: full CRUD, including hidden and archived products.
    """

    serializer_class = ProductSerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = ProductFilter
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'price', 'rating', 'created_at', 'stock']

    def get_queryset(self):
        qs = Product.objects.select_related('category')
        if self.action == 'retrieve':
            qs = qs.prefetch_related('reviews')
        if not can_manage_catalog(self.request.user):
            qs = qs.filter(visibility=Product.VISIBILITY_VISIBLE)
        return qs

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ProductDetailSerializer
        return ProductSerializer

    def perform_create(self, serializer):
        product = serializer.save()
        logger.info('Product %s created by %s', product.pk, self.request.user.pk)

    def perform_destroy(self, instance):
        if instance.order_items.exists():
            # Ordered products stay referenced by line items; archive instead.
            instance.visibility = Product.VISIBILITY_ARCHIVED
            instance.save(update_fields=['visibility', 'updated_at'])
            logger.info('Product %s archived instead of deleted', instance.pk)
            return
        instance.delete()


class CategoryViewSet(viewsets.ModelViewSet):
    """Product categories: public read, admin / product manager write."""

    queryset = Category.objects.annotate(product_count=Count('products')).order_by('name')
    serializer_class = CategorySerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [filters.SearchFilter]
    search_fields = ['name']
