from django.urls import path
from .views import ContentRecordDetailView, RetryBundleView

urlpatterns = [
    path("records/<uuid:record_id>/", ContentRecordDetailView.as_view(), name="record_detail"),
    path("bundles/<str:bundle_name>/retry/", RetryBundleView.as_view(), name="bundle_retry"),
]
