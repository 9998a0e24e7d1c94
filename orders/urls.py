# orders/urls.py
from django.urls import path
from .views import (
    CheckoutView,
    OrderListView,
    MerchantOrderListView,
    OrderDetailView,
    CancelOrderView,
    UpdateOrderStatusView,
    PaymentProofView,
    ConfirmPaymentView,
    RequestRefundView,
    ProcessRefundView,
    UnreconciledOrdersView,
)

urlpatterns = [
    # Order creation and management
    path('checkout/', CheckoutView.as_view(), name='checkout'),
    path('', OrderListView.as_view(), name='order-list'),
    path('merchant/', MerchantOrderListView.as_view(), name='merchant-order-list'),
    path('<int:pk>/', OrderDetailView.as_view(), name='order-detail'),
    path('<int:pk>/cancel/', CancelOrderView.as_view(), name='cancel-order'),
    path('<int:pk>/status/', UpdateOrderStatusView.as_view(), name='update-order-status'),
    path('<int:pk>/payment-proof/', PaymentProofView.as_view(), name='payment-proof'),
    path('<int:pk>/confirm-payment/', ConfirmPaymentView.as_view(), name='confirm-payment'),
    # Refund endpoints
    path('<int:pk>/request-refund/', RequestRefundView.as_view(), name='request-refund'),
    path('refunds/<int:pk>/process/', ProcessRefundView.as_view(), name='process-refund'),
    # Admin
    path('admin/unreconciled/', UnreconciledOrdersView.as_view(), name='unreconciled-orders'),
]
