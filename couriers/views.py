# couriers/views.py
from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.lifecycle import COURIER_ACTIVE_STATUSES
from orders.models import Order, OrderStatus
from orders.services import OrderLifecycleService

from .permissions import IsDelivery, CanAssignCouriers, CanVerifyRegistrations, get_courier_profile
from .serializers import (
    AvailableCouriersQuerySerializer, AutoAssignSerializer, ManualAssignSerializer,
    LocationSerializer, AvailabilitySerializer, ProofOfDeliverySerializer,
    CourierStatusSerializer, ReviewRegistrationSerializer, CourierSerializer,
    DeliveryOrderSerializer,
)
from .services import CourierAssignmentService, update_location, set_availability, review_registration


class AvailableCouriersView(APIView):
    """
    GET /api/couriers/available/?lat=&lng=&max_distance_km=
    Candidates for manual assignment, nearest first.
    """
    permission_classes = [permissions.IsAuthenticated, CanAssignCouriers]

    def get(self, request):
        ser = AvailableCouriersQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        candidates = CourierAssignmentService().list_available_couriers(
            ser.validated_data.get('lat'),
            ser.validated_data.get('lng'),
            ser.validated_data.get('max_distance_km'),
        )
        return Response([c.as_dict() for c in candidates])


class AutoAssignView(APIView):
    permission_classes = [permissions.IsAuthenticated, CanAssignCouriers]

    def post(self, request, order_id):
        ser = AutoAssignSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = CourierAssignmentService().auto_assign(
            order_id,
            merchant_lat=ser.validated_data.get('merchant_lat'),
            merchant_lng=ser.validated_data.get('merchant_lng'),
            max_distance_km=ser.validated_data.get('max_distance_km'),
            assigned_by=request.user,
        )
        return Response(result.as_dict(), status=200 if result.success else 422)


class ManualAssignView(APIView):
    permission_classes = [permissions.IsAuthenticated, CanAssignCouriers]

    def post(self, request, order_id):
        ser = ManualAssignSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = CourierAssignmentService().manual_assign(
            order_id, ser.validated_data['courier_id'], assigned_by=request.user
        )
        return Response(result.as_dict())


class MyActiveOrdersView(APIView):
    """
    GET /api/couriers/me/orders/
    Orders assigned to me and not yet delivered, with ETA to the buyer.
    """
    permission_classes = [permissions.IsAuthenticated, IsDelivery]

    def get(self, request):
        courier = get_courier_profile(request.user)
        qs = (Order.objects
              .filter(courier=courier, status__in=COURIER_ACTIVE_STATUSES | {OrderStatus.ON_DELIVERY})
              .select_related('merchant', 'courier')
              .order_by('-assigned_at'))
        return Response(DeliveryOrderSerializer(qs, many=True).data)


class CourierOrderStatusView(APIView):
    """POST /api/couriers/orders/<order_id>/status/  PICKED_UP, SENT, ON_DELIVERY."""
    permission_classes = [permissions.IsAuthenticated, IsDelivery]

    def post(self, request, order_id):
        ser = CourierStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        order = OrderLifecycleService.update_status(
            order_id, request.user, ser.validated_data['status'], notes=ser.validated_data['notes']
        )
        return Response(DeliveryOrderSerializer(order).data)


class ProofOfDeliveryView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsDelivery]

    def post(self, request, order_id):
        ser = ProofOfDeliverySerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        order = OrderLifecycleService.record_proof_of_delivery(
            order_id, request.user,
            ser.validated_data['pod_image_url'],
            notes=ser.validated_data['pod_notes'],
        )
        return Response(DeliveryOrderSerializer(order).data)


class MyLocationView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsDelivery]

    def post(self, request):
        ser = LocationSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        courier = update_location(get_courier_profile(request.user),
                                  ser.validated_data['lat'], ser.validated_data['lng'])
        return Response(CourierSerializer(courier).data)


class MyAvailabilityView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsDelivery]

    def post(self, request):
        ser = AvailabilitySerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        courier = set_availability(get_courier_profile(request.user), ser.validated_data['is_available'])
        return Response(CourierSerializer(courier).data)


class ReviewRegistrationView(APIView):
    permission_classes = [permissions.IsAuthenticated, CanVerifyRegistrations]

    def post(self, request, courier_id):
        ser = ReviewRegistrationSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        courier = review_registration(
            courier_id, request.user,
            approve=ser.validated_data['approve'],
            reason=ser.validated_data['reason'],
        )
        return Response(CourierSerializer(courier).data)
