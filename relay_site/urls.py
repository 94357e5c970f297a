from django.urls import include, path

urlpatterns = [
    path('', include('stk_relay.urls')),
    path('', include('emergency.urls')),
]
