# orders/views.py
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissionsUsers import Capability, capability_required, IsMerchant, IsSuperAdminOrAdmin
from desamart.exceptions import NotFound

from .models import Order, OrderStatus
from .serializers import (
    OrderSerializer, OrderDetailSerializer, CheckoutSerializer, CancelOrderSerializer,
    UpdateStatusSerializer, PaymentProofSerializer, RefundRequestSerializer,
    RequestRefundSerializer, ProcessRefundSerializer,
)
from .services import CheckoutService, OrderLifecycleService, RefundService, orders_visible_to


class CheckoutView(APIView):
    permission_classes = [IsAuthenticated, capability_required(Capability.PLACE_ORDER)]

    def post(self, request):
        ser = CheckoutSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        orders = CheckoutService.process_checkout(
            request.user,
            items=data['items'],
            delivery_type=data['delivery_type'],
            payment_method=data['payment_method'],
            delivery={
                'name': data['delivery_name'],
                'phone': data['delivery_phone'],
                'address': data['delivery_address'],
                'lat': data.get('delivery_lat'),
                'lng': data.get('delivery_lng'),
            },
            notes=data['notes'],
        )
        return Response(OrderSerializer(orders, many=True).data, status=status.HTTP_201_CREATED)


class OrderListView(generics.ListAPIView):
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        qs = Order.objects.filter(
            buyer=self.request.user
        ).select_related('merchant').prefetch_related('items').order_by('-created_at')
        status_filter = self.request.query_params.get('status')
        if status_filter:
            qs = qs.filter(status=status_filter)
        return qs


class MerchantOrderListView(generics.ListAPIView):
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated, IsMerchant]

    def get_queryset(self):
        qs = Order.objects.filter(
            merchant__user=self.request.user
        ).select_related('merchant').prefetch_related('items').order_by('-created_at')
        status_filter = self.request.query_params.get('status')
        if status_filter:
            qs = qs.filter(status=status_filter)
        return qs


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        order = orders_visible_to(request.user).filter(pk=pk).prefetch_related(
            'items', 'status_history'
        ).first()
        if order is None:
            raise NotFound('Pesanan tidak ditemukan')
        return Response(OrderDetailSerializer(order).data)


class CancelOrderView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        ser = CancelOrderSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        order = OrderLifecycleService.cancel(pk, request.user, reason=ser.validated_data['reason'])
        return Response(OrderDetailSerializer(order).data)


class UpdateOrderStatusView(APIView):
    """
    POST /api/orders/<pk>/status/
    Merchant, buyer (confirm receipt) or admin driven transition.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        ser = UpdateStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        order = OrderLifecycleService.update_status(
            pk, request.user,
            ser.validated_data['status'],
            rejection_reason=ser.validated_data['rejection_reason'],
            notes=ser.validated_data['notes'],
        )
        return Response(OrderDetailSerializer(order).data)


class PaymentProofView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        ser = PaymentProofSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        order = OrderLifecycleService.record_payment_proof(pk, request.user, ser.validated_data['payment_proof_url'])
        return Response(OrderDetailSerializer(order).data)


class ConfirmPaymentView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        order = OrderLifecycleService.confirm_payment(pk, request.user)
        return Response(OrderDetailSerializer(order).data)


class RequestRefundView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        ser = RequestRefundSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        refund = RefundService.request_refund(pk, request.user, ser.validated_data['reason'])
        return Response(RefundRequestSerializer(refund).data, status=status.HTTP_201_CREATED)


class ProcessRefundView(APIView):
    permission_classes = [IsAuthenticated, IsSuperAdminOrAdmin]

    def post(self, request, pk):
        ser = ProcessRefundSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        refund = RefundService.process_refund(
            pk, request.user,
            approve=ser.validated_data['approve'],
            notes=ser.validated_data['notes'],
        )
        return Response(RefundRequestSerializer(refund).data)


class UnreconciledOrdersView(generics.ListAPIView):
    """Completed orders whose quota deduction failed."""
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated, IsSuperAdminOrAdmin]

    def get_queryset(self):
        return Order.objects.filter(
            status=OrderStatus.DONE, quota_consumed=False
        ).select_related('merchant').prefetch_related('items').order_by('completed_at')
