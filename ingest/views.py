from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .config import PipelineConfig
from .models import ContentRecord
from .serializers import ContentRecordSerializer
from .tasks import requeue_failed_bundle


class ContentRecordDetailView(views.APIView):
    """
    Read-only view of a record as the pipeline last wrote it, including the
    season/episode tree for shows.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, record_id):
        try:
            record = ContentRecord.objects.prefetch_related("seasons__episodes").get(pk=record_id)
        except ContentRecord.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)
        return Response(ContentRecordSerializer(record).data)


class RetryBundleView(views.APIView):
    """
    Queues a failed bundle for another run. Only bundles sitting in the failed
    root can be retried; anything else is still owned by the pipeline.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, bundle_name):
        roots = PipelineConfig.from_settings().roots
        if "/" in bundle_name or bundle_name.startswith(".") or not (roots.failed / bundle_name).is_dir():
            return Response({"detail": "No failed bundle with that name"}, status=404)

        requeue_failed_bundle.delay(bundle_name)
        return Response({"bundle": bundle_name}, status=status.HTTP_202_ACCEPTED)
