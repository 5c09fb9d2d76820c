import logging

from django.conf import settings
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from integrations.models import InventoryIntegration

from .importer import (
    ActiveRunExists,
    RunNotResumable,
    abort_run,
    fail_run,
    mark_stale_runs,
    resume_run,
    start_run,
)
from .models import ImportRun
from .serializers import AbortRequestSerializer, ImportRequestSerializer, WatchdogRequestSerializer
from .tasks import dispatch_import_segment, publish_import_progress

logger = logging.getLogger(__name__)


def _conflict(exc: ActiveRunExists) -> Response:
    return Response(
        {"detail": "Import already in progress", "runId": str(exc.run.pk) if exc.run else None},
        status=status.HTTP_409_CONFLICT,
    )


class ImportTriggerView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = ImportRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        integration = InventoryIntegration.objects.filter(pk=data["integrationId"]).first()
        if integration is None:
            return Response({"detail": "Integration not found."}, status=status.HTTP_404_NOT_FOUND)

        if data["mode"] == ImportRequestSerializer.MODE_START:
            try:
                run = start_run(integration)
            except ActiveRunExists as exc:
                return _conflict(exc)
        else:
            run = ImportRun.objects.filter(pk=data["runId"], integration=integration).first()
            if run is None:
                return Response({"detail": "Run not found."}, status=status.HTTP_404_NOT_FOUND)
            try:
                run = resume_run(run)
            except RunNotResumable as exc:
                return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
            except ActiveRunExists as exc:
                return _conflict(exc)

        publish_import_progress(run)
        try:
            task_id = dispatch_import_segment(str(run.pk))
        except Exception as exc:
            logger.exception("Failed to queue import run %s", run.pk)
            failed = fail_run(run.pk, ImportRun.ERROR_DISPATCH, f"Failed to queue import: {exc}")
            if failed is not None:
                publish_import_progress(failed)
            return Response(
                {"detail": "Unable to queue import.", "runId": str(run.pk)},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        return Response(
            {"runId": str(run.pk), "taskId": task_id, "mode": data["mode"]},
            status=status.HTTP_202_ACCEPTED,
        )


class ImportAbortView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = AbortRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if data.get("runId"):
            run = ImportRun.objects.filter(pk=data["runId"]).first()
        else:
            run = ImportRun.objects.active().for_integration(data["integrationId"]).first()
        if run is None:
            return Response({"detail": "No active import run found."}, status=status.HTTP_404_NOT_FOUND)

        aborted = abort_run(run)
        if aborted is None:
            return Response(
                {"detail": "Import run not found or not in abortable state."},
                status=status.HTTP_404_NOT_FOUND,
            )

        publish_import_progress(aborted)
        return Response({"success": True, "runId": str(aborted.pk), "status": aborted.status})


class ImportWatchdogView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = WatchdogRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        threshold = serializer.validated_data.get(
            "thresholdMinutes",
            getattr(settings, "IMPORT_WATCHDOG_THRESHOLD_MINUTES", 15),
        )

        stale = mark_stale_runs(threshold, on_progress=publish_import_progress)
        return Response(
            {
                "success": True,
                "thresholdMinutes": threshold,
                "cleanedCount": len(stale),
                "staleRuns": stale,
            }
        )
