"""Accounts app views.

Contains:
- Registration
- Customer profile APIs (profile, addresses, preferences, own activity)
- Admin user management (listing with order aggregates, status/role changes, analytics)
"""

import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, F, Max, Q, Sum
from rest_framework import generics, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from activity import services as audit
from activity.serializers import ActivityLogSerializer
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.pagination import create_paginated_response, execute_paginated_query, parse_pagination_params
from core.params import parse_number, parse_when
from core.periods import period_start
from dashboard.pipeline import Bucket, Pipeline

from .models import UserPreferences
from .permissions import IsAdmin
from .serializers import (
    AddressSerializer,
    AdminUserSerializer,
    RegisterSerializer,
    UserPreferencesSerializer,
    UserProfileSerializer,
    UserRoleSerializer,
    UserStatusSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()


class RegisterView(generics.CreateAPIView):
    """Public registration endpoint."""
    queryset = User.objects.all()
    permission_classes = [AllowAny]
    authentication_classes = []
    serializer_class = RegisterSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info('User %s registered', user.pk)
        return Response(
            {'success': True, 'user': UserProfileSerializer(user).data},
            status=status.HTTP_201_CREATED,
        )


class UserProfileViewSet(viewsets.GenericViewSet):
    """Authenticated profile management: profile, addresses, preferences, activity."""
    permission_classes = [IsAuthenticated]
    serializer_class = UserProfileSerializer

    def _get_address(self, request, address_id):
        address = request.user.addresses.filter(pk=address_id).first()
        if address is None:
            raise NotFoundError('Address')
        return address

    @action(detail=False, methods=['get', 'put'])
    def me(self, request):
        """Get or update the authenticated user's profile."""
        user = request.user
        if request.method == 'GET':
            return Response(self.get_serializer(user).data)

        serializer = self.get_serializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        audit.record_activity(user, audit.PROFILE_UPDATED, 'Updated profile', request=request)
        user.refresh_from_db()
        return Response(self.get_serializer(user).data)

    @action(detail=False, methods=['get', 'post'])
    def addresses(self, request):
        """List addresses or add one; the first address of a type becomes its default."""
        if request.method == 'GET':
            addresses = request.user.addresses.all()
            address_type = request.query_params.get('type')
            if address_type:
                addresses = addresses.filter(type=address_type)
            return Response(AddressSerializer(addresses, many=True).data)

        serializer = AddressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        address = request.user.add_address(**serializer.validated_data)
        audit.record_activity(
            request.user, audit.ADDRESS_ADDED, f'Added {address.type} address in {address.city}', request=request,
        )
        return Response(AddressSerializer(address).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get', 'put', 'patch', 'delete'], url_path=r'addresses/(?P<address_id>\d+)')
    def address_detail(self, request, address_id=None):
        """Read, update or delete an address owned by the current user."""
        address = self._get_address(request, address_id)

        if request.method == 'GET':
            return Response(AddressSerializer(address).data)

        if request.method == 'DELETE':
            request.user.delete_address(address)
            audit.record_activity(
                request.user, audit.ADDRESS_DELETED, f'Deleted {address.type} address in {address.city}', request=request,
            )
            return Response(status=status.HTTP_204_NO_CONTENT)

        serializer = AddressSerializer(address, data=request.data, partial=(request.method == 'PATCH'))
        serializer.is_valid(raise_exception=True)
        fields = dict(serializer.validated_data)
        if 'type' in fields and fields['type'] != address.type:
            raise ValidationError('Address type cannot be changed.')
        if fields.get('is_default') is False and address.is_default:
            # Keep exactly one default per type; use set-default on another address instead.
            fields.pop('is_default')
        address = request.user.update_address(address, **fields)
        audit.record_activity(
            request.user, audit.ADDRESS_UPDATED, f'Updated {address.type} address in {address.city}', request=request,
        )
        return Response(AddressSerializer(address).data)

    @action(detail=False, methods=['patch'], url_path=r'addresses/(?P<address_id>\d+)/set-default')
    def set_default_address(self, request, address_id=None):
        """Make an address the default for its type."""
        address = self._get_address(request, address_id)
        request.user.set_default_address(address)
        return Response({'success': True, 'message': 'Default address updated.', 'address': AddressSerializer(address).data})

    @action(detail=False, methods=['get', 'put'])
    def preferences(self, request):
        prefs, _ = UserPreferences.objects.get_or_create(user=request.user)
        if request.method == 'GET':
            return Response(UserPreferencesSerializer(prefs).data)

        serializer = UserPreferencesSerializer(prefs, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        audit.record_activity(request.user, audit.PREFERENCES_UPDATED, 'Updated preferences', request=request)
        return Response(serializer.data)

    @action(detail=False, methods=['get'])
    def activity(self, request):
        """The current user's own activity log, newest first."""
        params = parse_pagination_params(request.query_params)
        result = audit.paginated_activity(
            params,
            user=request.user,
            action=request.query_params.get('action'),
        )
        return Response(create_paginated_response(
            ActivityLogSerializer(result.data, many=True).data, params.page, params.limit, result.total,
        ))


class AdminUserViewSet(viewsets.GenericViewSet):
    """Admin-only user management."""
    permission_classes = [IsAuthenticated, IsAdmin]
    serializer_class = AdminUserSerializer
    lookup_value_regex = r'\d+'

    SORT_FIELDS = {
        'dateJoined': 'date_joined',
        'name': 'first_name',
        'username': 'username',
        'email': 'email',
        'orders': 'order_count',
        'spend': 'total_spent',
        'lastOrder': 'last_order_date',
    }

    def get_queryset(self):
        return User.objects.annotate(
            order_count=Count('orders', distinct=True),
            total_spent=Sum('orders__total_price'),
            last_order_date=Max('orders__created_at'),
        )

    def _get_user(self, pk):
        user = self.get_queryset().filter(pk=pk).first()
        if user is None:
            raise NotFoundError('User')
        return user

    def _filtered_queryset(self, query):
        queryset = self.get_queryset()

        name = query.get('name') or query.get('search')
        if name:
            queryset = queryset.filter(
                Q(username__icontains=name) | Q(first_name__icontains=name) | Q(last_name__icontains=name)
                | Q(email__icontains=name)
            )
        if query.get('email'):
            queryset = queryset.filter(email__icontains=query['email'])
        if query.get('status'):
            queryset = queryset.filter(status=query['status'])
        if query.get('role'):
            queryset = queryset.filter(role=query['role'])
        date_from = parse_when(query.get('dateFrom'))
        if date_from:
            queryset = queryset.filter(date_joined__gte=date_from)
        date_to = parse_when(query.get('dateTo'), end_of_day=True)
        if date_to:
            queryset = queryset.filter(date_joined__lte=date_to)

        for param, lookup in (
            ('minOrders', 'order_count__gte'),
            ('maxOrders', 'order_count__lte'),
            ('minSpend', 'total_spent__gte'),
            ('maxSpend', 'total_spent__lte'),
        ):
            value = parse_number(query.get(param), param)
            if value is not None:
                queryset = queryset.filter(**{lookup: value})
        return queryset

    def _ordering(self, sort):
        sort = sort or '-dateJoined'
        descending = sort.startswith('-')
        field = self.SORT_FIELDS.get(sort.lstrip('-'))
        if field is None:
            raise ValidationError(f'Unsupported sort field: {sort}')
        # Users without orders sort last.
        ordering = F(field).desc(nulls_last=True) if descending else F(field).asc(nulls_last=True)
        return [ordering, '-pk']

    def list(self, request):
        params = parse_pagination_params(request.query_params)
        queryset = self._filtered_queryset(request.query_params)
        result = execute_paginated_query(
            User, queryset, params, sort=self._ordering(request.query_params.get('sort')),
        )
        return Response(create_paginated_response(
            self.get_serializer(result.data, many=True).data, params.page, params.limit, result.total,
        ))

    def retrieve(self, request, pk=None):
        user = self._get_user(pk)
        return Response({'success': True, 'user': self.get_serializer(user).data})

    def update(self, request, pk=None):
        user = self._get_user(pk)
        serializer = self.get_serializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        audit.record_activity(
            request.user, audit.USER_UPDATED, f"Admin updated user '{user.email}'", target_user=user, request=request,
        )
        return Response({'success': True, 'user': self.get_serializer(self._get_user(pk)).data})

    @action(detail=True, methods=['patch'])
    def status(self, request, pk=None):
        user = self._get_user(pk)
        serializer = UserStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data['status']
        if user.pk == request.user.pk and new_status == User.STATUS_SUSPENDED:
            raise ConflictError('You cannot suspend your own account.')

        previous = user.status
        user.set_status(new_status, serializer.validated_data.get('statusReason'))
        audit.record_activity(
            request.user,
            audit.USER_STATUS_UPDATED,
            f"Admin changed user '{user.email}' status from {previous} to {new_status}",
            target_user=user,
            request=request,
        )
        logger.info('User %s status %s -> %s by %s', user.pk, previous, new_status, request.user.pk)
        return Response({'success': True, 'user': self.get_serializer(self._get_user(pk)).data})

    @action(detail=True, methods=['patch'])
    def role(self, request, pk=None):
        user = self._get_user(pk)
        serializer = UserRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_role = serializer.validated_data['role']
        if user.pk == request.user.pk and new_role != User.ROLE_ADMIN:
            raise ConflictError('You cannot remove your own admin role.')

        previous = user.role
        user.role = new_role
        user.save(update_fields=['role'])
        audit.record_activity(
            request.user,
            audit.USER_ROLE_UPDATED,
            f"Admin changed user '{user.email}' role from {previous} to {new_role}",
            target_user=user,
            request=request,
        )
        return Response({'success': True, 'user': self.get_serializer(self._get_user(pk)).data})

    def destroy(self, request, pk=None):
        """Delete a user; users with orders are suspended instead."""
        user = self._get_user(pk)
        if user.pk == request.user.pk:
            raise ConflictError('You cannot delete your own account.')

        with transaction.atomic():
            if user.order_count:
                user.set_status(
                    User.STATUS_SUSPENDED, 'Account suspended due to deletion request (has orders)',
                )
                audit.record_activity(
                    request.user,
                    audit.USER_SUSPENDED,
                    f"Suspended user '{user.email}' instead of deletion (has {user.order_count} orders)",
                    target_user=user,
                    request=request,
                )
                return Response({
                    'success': True,
                    'deleted': False,
                    'message': f'User has {user.order_count} orders and has been suspended instead of deleted',
                })

            email = user.email
            # Addresses and preferences are removed with the user.
            user.delete()
            audit.record_activity(request.user, audit.USER_DELETED, f"Deleted user '{email}'", request=request)
        logger.info('User %s deleted by %s', pk, request.user.pk)
        return Response({'success': True, 'deleted': True, 'message': 'User deleted successfully'})

    @action(detail=False, methods=['get'], url_path='analytics/registration')
    def registration_analytics(self, request):
        """New registrations per day for a period (defaults to 30 days)."""
        period = request.query_params.get('period') or '30d'
        start = period_start(period, default='30d')
        rows = (
            Pipeline()
            .match(date_joined__gte=start)
            .group({'date': Bucket('date_joined', 'day')}, count=Count('id'))
            .sort('date')
            .execute(User.objects.all())
        )
        analytics = [{'date': row['date'].date().isoformat(), 'count': row['count']} for row in rows]
        return Response({'success': True, 'period': period, 'analytics': analytics})
