from django.urls import path

from .views import EmergencyAlertView

urlpatterns = [
    path('api/emergency-alert', EmergencyAlertView.as_view(), name='emergency-alert'),
]
