from django.urls import path

from .views import (
    PackagingOptionListView,
    PackagingOptionDetailView,
    PackagingOptionSetDefaultView,
    ActivePackagingView,
    DefaultPackagingView,
)

urlpatterns = [
    path('packaging-options', PackagingOptionListView.as_view(), name='packaging-list'),
    path('packaging-options/active', ActivePackagingView.as_view(), name='packaging-active'),
    path('packaging-options/default', DefaultPackagingView.as_view(), name='packaging-default'),
    path('packaging-options/<int:pk>', PackagingOptionDetailView.as_view(), name='packaging-detail'),
    path('packaging-options/<int:pk>/set-default', PackagingOptionSetDefaultView.as_view(), name='packaging-set-default'),
]
