from django.urls import path
from .views import LoginAPIView, MeView

urlpatterns = [
    path('login/', LoginAPIView.as_view(), name='login'),
    path('me/', MeView.as_view(), name='me'),
]
