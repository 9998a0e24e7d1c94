# views.py
from rest_framework import generics
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import NotificationSerializer
from .utils import inbox_for, mark_all_read, mark_read


class NotificationPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class NotificationListView(generics.ListAPIView):
    """
    GET /api/notifications/?is_read=false&type=quota
    The caller's inbox, newest first.
    """
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = NotificationPagination

    def get_queryset(self):
        qs = inbox_for(self.request.user).select_related('content_type')
        is_read = self.request.query_params.get('is_read')
        if is_read in ('true', 'false'):
            qs = qs.filter(is_read=is_read == 'true')
        notification_type = self.request.query_params.get('type')
        if notification_type:
            qs = qs.filter(notification_type=notification_type)
        return qs


class UnreadCountView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({'unread_count': inbox_for(request.user).filter(is_read=False).count()})


class MarkAsReadView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, notification_id):
        notification = mark_read(request.user, notification_id)
        return Response({
            'notification': NotificationSerializer(notification).data,
            'unread_count': inbox_for(request.user).filter(is_read=False).count(),
        })


class MarkAllAsReadView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        return Response({'read_count': mark_all_read(request.user)})
