from django.urls import path
from .views import TinkoffNotificationView


urlpatterns = [
    path('webhooks/tinkoff/', TinkoffNotificationView.as_view(), name='tinkoff-notification'),
]
