# merchants/views.py
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissionsUsers import Capability, capability_required, has_capability
from desamart.exceptions import CapabilityDenied, NotFound

from .models import Merchant, MerchantSubscription
from .serializers import (
    AssignPackageSerializer, FreeTierLimitSerializer, MerchantSubscriptionSerializer,
    QuotaCheckSerializer, QuotaInfoSerializer, QuotaUsageLogSerializer,
)
from .services import FreeTierLimitProvider, QuotaService


def get_own_merchant(user):
    merchant = Merchant.objects.filter(user=user).order_by('id').first()
    if merchant is None:
        raise NotFound('Toko tidak ditemukan')
    return merchant


def get_visible_merchant(user, merchant_id):
    merchant = Merchant.objects.filter(pk=merchant_id).first()
    if merchant is None:
        raise NotFound('Toko tidak ditemukan')
    if merchant.user_id != user.id and not has_capability(user, Capability.VERIFY_REGISTRATIONS):
        raise CapabilityDenied()
    return merchant


class MyQuotaView(APIView):
    permission_classes = [IsAuthenticated, capability_required(Capability.VIEW_MERCHANT_QUOTA)]

    def get(self, request):
        merchant = get_own_merchant(request.user)
        info = QuotaService().fetch_quota_info(merchant.pk)
        return Response(QuotaInfoSerializer(info.as_dict()).data)


class MyQuotaLogsView(APIView):
    permission_classes = [IsAuthenticated, capability_required(Capability.VIEW_MERCHANT_QUOTA)]

    def get(self, request):
        merchant = get_own_merchant(request.user)
        try:
            limit = min(100, max(1, int(request.query_params.get('limit', 20))))
        except ValueError:
            limit = 20
        logs = QuotaService().fetch_usage_logs(merchant.pk, limit=limit)
        return Response(QuotaUsageLogSerializer(logs, many=True).data)


class MerchantQuotaView(APIView):
    permission_classes = [IsAuthenticated, capability_required(Capability.VIEW_MERCHANT_QUOTA)]

    def get(self, request, pk):
        merchant = get_visible_merchant(request.user, pk)
        info = QuotaService().fetch_quota_info(merchant.pk)
        return Response(QuotaInfoSerializer(info.as_dict()).data)


class MerchantSubscriptionsView(APIView):
    permission_classes = [IsAuthenticated, capability_required(Capability.MANAGE_SUBSCRIPTIONS)]

    def get(self, request, pk):
        subscriptions = MerchantSubscription.objects.filter(
            merchant_id=pk
        ).select_related('package').order_by('-created_at')
        return Response(MerchantSubscriptionSerializer(subscriptions, many=True).data)

    def post(self, request, pk):
        ser = AssignPackageSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        subscription = QuotaService().assign_package(pk, ser.validated_data['package_id'], assigned_by=request.user)
        return Response(MerchantSubscriptionSerializer(subscription).data, status=status.HTTP_201_CREATED)


class QuotaCheckView(APIView):
    """Checkout pre-flight: can every merchant in the cart still take orders?"""
    permission_classes = [IsAuthenticated, capability_required(Capability.PLACE_ORDER)]

    def post(self, request):
        ser = QuotaCheckSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = QuotaService().check_checkout(ser.validated_data['merchant_ids'])
        return Response(result)


class FreeTierSettingView(APIView):
    permission_classes = [IsAuthenticated, capability_required(Capability.MANAGE_SETTINGS)]

    def get(self, request):
        return Response({'limit': FreeTierLimitProvider().get_limit()})

    def put(self, request):
        ser = FreeTierLimitSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        limit = FreeTierLimitProvider().set_limit(ser.validated_data['limit'])
        return Response({'limit': limit})
