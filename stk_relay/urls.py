from django.urls import path

from .views import DonateView, MpesaCallbackView, ProjectStkPushView, StkPushView

urlpatterns = [
    path('api/stkpush', StkPushView.as_view(), name='stk-push'),
    path('api/donate', DonateView.as_view(), name='donate'),
    path('stk-push/<str:project_id>', ProjectStkPushView.as_view(), name='project-stk-push'),
    path('mpesa/callback', MpesaCallbackView.as_view(), name='mpesa-callback'),
]
