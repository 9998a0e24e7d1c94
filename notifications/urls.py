# urls.py
from django.urls import path
from .views import (
    NotificationListView,
    MarkAsReadView,
    UnreadCountView,
    MarkAllAsReadView,
)

urlpatterns = [
    path('', NotificationListView.as_view(), name='notification-list'),
    path('unread-count/', UnreadCountView.as_view(), name='unread-count'),
    path('read-all/', MarkAllAsReadView.as_view(), name='mark-all-read'),
    path('<int:notification_id>/read/', MarkAsReadView.as_view(), name='mark-read'),
]
