# products/views.py
from decimal import Decimal, InvalidOperation

from rest_framework.pagination import PageNumberPagination
from rest_framework.views import APIView

from merchants.services import QuotaService

from .models import Product
from .serializers import ProductSerializer


class ProductPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


def _decimal_param(value):
    if value in (None, ''):
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        return None


class ProductListView(APIView):
    """
    Public catalogue. Products of merchants that are closed, not approved
    or out of transaction quota are hidden.
    """
    permission_classes = []  # Accessible to anyone
    authentication_classes = []

    def get(self, request):
        visible_merchants = QuotaService().merchants_with_active_quota()

        qs = Product.objects.filter(
            is_active=True,
            merchant_id__in=visible_merchants,
            merchant__is_open=True,
        ).select_related('merchant')

        merchant_id = request.query_params.get('merchant_id')
        if merchant_id and merchant_id.isdigit():
            qs = qs.filter(merchant_id=int(merchant_id))

        search = request.query_params.get('q')
        if search:
            qs = qs.filter(name__icontains=search.strip())

        min_price = _decimal_param(request.query_params.get('min_price'))
        if min_price is not None:
            qs = qs.filter(price__gte=min_price)
        max_price = _decimal_param(request.query_params.get('max_price'))
        if max_price is not None:
            qs = qs.filter(price__lte=max_price)

        if request.query_params.get('in_stock') == 'true':
            qs = qs.filter(stock__gt=0)

        # Validate sort options
        sort_by = request.query_params.get('sort_by', 'created_at')
        if sort_by not in ['price', 'created_at', 'name']:
            sort_by = 'created_at'
        sort_prefix = '' if request.query_params.get('sort_direction', 'desc').lower() == 'asc' else '-'
        qs = qs.order_by(f"{sort_prefix}{sort_by}", 'id')

        paginator = ProductPagination()
        page = paginator.paginate_queryset(qs, request, view=self)
        return paginator.get_paginated_response(ProductSerializer(page, many=True).data)
