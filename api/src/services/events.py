from __future__ import annotations

import json
import logging
import aiokafka
import aiokafka.errors
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from settings import kafka_settings

if TYPE_CHECKING:
    from services.reconciliation import ReconciliationOutcome


logger = logging.getLogger('lms-billing-events')

producer: aiokafka.AIOKafkaProducer | None = None


@dataclass(frozen=True)
class EventPublisher:
    # None when publishing is disabled
    kafka_producer: aiokafka.AIOKafkaProducer | None
    payment_topic: str = kafka_settings.payment_topic
    enrollment_topic: str = kafka_settings.enrollment_topic

    async def publish_outcome(self, outcome: ReconciliationOutcome):
        """Sent after the reconciliation transaction is committed.

        Delivery is best effort, the committed state is the source of truth.
        """
        if outcome.payment_id is None or outcome.kind in ('already_processed', 'ignored'):
            return

        data = {
            'payment_id': outcome.payment_id,
            'status': outcome.status,
            'user_id': outcome.user_id,
            'course_id': outcome.course_id
        }
        await self._send(self.payment_topic, data)

        if outcome.kind == 'granted':
            await self._send(self.enrollment_topic, {
                'enrollment_id': outcome.enrollment_id,
                'user_id': outcome.user_id,
                'course_id': outcome.course_id,
                'status': 'active'
            })

    async def _send(self, topic: str, data: dict[str, Any]):
        if self.kafka_producer is None:
            return

        try:
            await self.kafka_producer.send_and_wait(topic=topic, value=json.dumps(data).encode())
        except aiokafka.errors.KafkaError as e:
            logger.warning(f'couldn\'t send {data} to the "{topic}" topic: {e}')
            return

        logger.info(f'sent {data} to the "{topic}" topic')


async def start():
    global producer

    if kafka_settings.bootstrap_servers is None:
        logger.info('kafka is not configured, events publishing is disabled')
        return

    producer = aiokafka.AIOKafkaProducer(bootstrap_servers=kafka_settings.bootstrap_servers)
    await producer.start()


async def stop():
    global producer

    if producer is not None:
        await producer.stop()
    producer = None


def get_event_publisher() -> EventPublisher:
    return EventPublisher(kafka_producer=producer)
