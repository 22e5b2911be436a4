import logging

from celery import shared_task

from .config import PipelineConfig
from .errors import RelocationError
from .mover import relocate

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def requeue_failed_bundle(self, bundle_name: str):
    """
    Manual retry: move a bundle from the failed root back to pending, where
    the running pipeline picks it up like any new upload.
    """
    roots = PipelineConfig.from_settings().roots
    try:
        relocate(bundle_name, roots.failed, roots.pending)
    except RelocationError:
        logger.exception("Could not requeue %s", bundle_name)
        raise
    logger.info("Requeued failed bundle %s", bundle_name)
    return bundle_name
