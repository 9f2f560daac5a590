"""Asynchronous tasks of the core module."""

import structlog
from celery import shared_task
from django.conf import settings
from django.db import transaction

from modules.core.models import EventStatus, OutboxEvent
from shared.domain.events import event_class_for
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


@shared_task(name="core.relay_outbox_events")
def relay_outbox_events(batch_size=None):
    """Publish pending outbox events to the in-process event bus.

    Rows are claimed with ``SELECT ... FOR UPDATE SKIP LOCKED`` so several
    workers can run the relay at once.  Failed rows are retried on later
    runs until ``OUTBOX_MAX_RETRIES`` is reached.
    """
    limit = batch_size or getattr(settings, "OUTBOX_RELAY_BATCH_SIZE", 100)
    max_retries = getattr(settings, "OUTBOX_MAX_RETRIES", 5)
    published = failed = 0

    with transaction.atomic():
        batch = list(
            OutboxEvent.objects.select_for_update(skip_locked=True)
            .filter(
                status__in=[EventStatus.PENDING, EventStatus.FAILED],
                retry_count__lt=max_retries,
            )
            .order_by("created_at")[:limit]
        )

        for row in batch:
            log = logger.bind(
                outbox_id=str(row.id),
                event_type=row.event_type,
                aggregate_id=row.aggregate_id,
            )
            event_class = event_class_for(row.event_type)
            if event_class is None:
                log.error("outbox.unknown_event_type")
                row.mark_as_failed(f"Unknown event type: {row.event_type}")
                failed += 1
                continue
            try:
                event_bus.publish(event_class.from_payload(row.payload))
            except Exception as exc:  # noqa: BLE001 - handler errors are recorded on the row
                log.exception("outbox.publish_failed")
                row.mark_as_failed(str(exc))
                failed += 1
                continue
            row.mark_as_published()
            published += 1

    logger.info("outbox.relay_completed", published=published, failed=failed)
    return {"published": published, "failed": failed}
