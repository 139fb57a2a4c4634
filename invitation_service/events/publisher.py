from __future__ import annotations

import json
import logging
from typing import Any

try:  # pragma: no cover - optional dependency
    from kafka import KafkaProducer
except ImportError:  # pragma: no cover - kafka extra not installed
    KafkaProducer = None  # type: ignore

from invitation_service.config import Settings
from invitation_service.models.api import JobStatusResponse
from invitation_service.models.domain import GenerationJob


def build_job_event(job: GenerationJob) -> dict[str, Any]:
    """Compact progress record: the public status payload plus routing fields."""
    status = JobStatusResponse.from_job(job).model_dump(mode="json", exclude_none=True)
    return {
        "event": f"invitation.job.{job.stage.value}",
        "template_id": job.template_id,
        "session_id": job.session_id,
        "occurred_at": job.updated_at.isoformat(),
        **status,
    }


class JobEventPublisher:
    """Streams invitation job progress to Kafka, one record per status transition.

    Records are keyed by job id, so every update of a job lands on the same
    partition and consumers see them in order.
    """

    def __init__(self, bootstrap_servers: str, topic: str, logger: logging.Logger | None = None) -> None:
        if KafkaProducer is None:
            raise RuntimeError("kafka-python is not installed (install the 'kafka' extra)")
        if not bootstrap_servers or not topic:
            raise ValueError("bootstrap_servers and topic are required")
        self.topic = topic
        self.log = logger or logging.getLogger(__name__)
        self._producer = KafkaProducer(
            bootstrap_servers=bootstrap_servers,
            key_serializer=lambda key: key.encode("utf-8"),
            value_serializer=lambda record: json.dumps(record, ensure_ascii=False).encode("utf-8"),
            linger_ms=5,
        )

    @classmethod
    def from_settings(cls, settings: Settings, logger: logging.Logger | None = None) -> JobEventPublisher | None:
        if not settings.kafka_enabled or not settings.kafka_updates_topic:
            return None
        return cls(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic=settings.kafka_updates_topic,
            logger=logger,
        )

    def publish(self, job: GenerationJob) -> None:
        record = build_job_event(job)
        try:
            self._producer.send(self.topic, key=str(job.id), value=record)
        except Exception:
            self.log.warning(
                "job event not published",
                extra={"job_id": str(job.id), "stage": job.stage.value, "topic": self.topic},
                exc_info=True,
            )

    def close(self) -> None:
        try:
            self._producer.flush()
            self._producer.close()
        except Exception:
            self.log.debug("job event publisher close failed", exc_info=True)
