# merchants/urls.py
from django.urls import path
from .views import (
    MyQuotaView,
    MyQuotaLogsView,
    MerchantQuotaView,
    MerchantSubscriptionsView,
    QuotaCheckView,
    FreeTierSettingView,
)

urlpatterns = [
    path('me/quota/', MyQuotaView.as_view(), name='my-quota'),
    path('me/quota/logs/', MyQuotaLogsView.as_view(), name='my-quota-logs'),
    path('quota/check/', QuotaCheckView.as_view(), name='quota-check'),
    path('settings/free-tier/', FreeTierSettingView.as_view(), name='free-tier-setting'),
    path('<int:pk>/quota/', MerchantQuotaView.as_view(), name='merchant-quota'),
    path('<int:pk>/subscriptions/', MerchantSubscriptionsView.as_view(), name='merchant-subscriptions'),
]
