# couriers/urls.py
from django.urls import path
from .views import (
    AvailableCouriersView,
    AutoAssignView,
    ManualAssignView,
    CourierOrderStatusView,
    ProofOfDeliveryView,
    MyActiveOrdersView,
    MyLocationView,
    MyAvailabilityView,
    ReviewRegistrationView,
)

urlpatterns = [
    path('available/', AvailableCouriersView.as_view(), name='available-couriers'),
    path('orders/<int:order_id>/auto-assign/', AutoAssignView.as_view(), name='auto-assign'),
    path('orders/<int:order_id>/assign/', ManualAssignView.as_view(), name='manual-assign'),
    path('orders/<int:order_id>/status/', CourierOrderStatusView.as_view(), name='courier-order-status'),
    path('orders/<int:order_id>/proof-of-delivery/', ProofOfDeliveryView.as_view(), name='proof-of-delivery'),
    path('me/orders/', MyActiveOrdersView.as_view(), name='courier-active-orders'),
    path('me/location/', MyLocationView.as_view(), name='courier-location'),
    path('me/availability/', MyAvailabilityView.as_view(), name='courier-availability'),
    path('<int:courier_id>/review/', ReviewRegistrationView.as_view(), name='review-courier'),
]
