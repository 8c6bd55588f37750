"""
Queue Management System
Fans follow-graph events out to Kafka, with Redis copies for high priority jobs
"""
import json
from typing import Dict, Any, Optional
from datetime import datetime
from enum import Enum
from . import core
from .core import EVENT_PUBLISH_FAILURES
import logging

logger = logging.getLogger(__name__)

class QueueType(Enum):
    """Different queue types for different operations"""
    FOLLOWS = "follows"
    USER_ACTIVITY = "user_activity"
    COUNTER_AUDIT = "counter_audit"

class Priority(Enum):
    """Message priority levels"""
    LOW = 1
    NORMAL = 2
    HIGH = 3

class QueueManager:
    """
    Queue manager using Kafka for persistence and Redis for fast consumers
    """

    def __init__(self):
        self.kafka_topics = {
            QueueType.FOLLOWS: "follows-queue",
            QueueType.USER_ACTIVITY: "user-activity-queue",
            QueueType.COUNTER_AUDIT: "counter-audit-queue",
        }

        self.redis_queues = {
            QueueType.FOLLOWS: "queue:follows",
            QueueType.USER_ACTIVITY: "queue:user_activity",
            QueueType.COUNTER_AUDIT: "queue:counter_audit",
        }

    async def enqueue(
        self,
        queue_type: QueueType,
        data: Dict[str, Any],
        priority: Priority = Priority.NORMAL,
        user_id: Optional[int] = None
    ) -> str:
        """
        Add job to queue
        Returns job_id for tracking
        """
        job_id = f"{queue_type.value}_{datetime.utcnow().timestamp()}_{hash(str(data)) % 10000}"

        job_data = {
            "id": job_id,
            "type": queue_type.value,
            "data": data,
            "priority": priority.value,
            "created_at": datetime.utcnow().isoformat(),
            "user_id": user_id,
            "status": "pending"
        }

        try:
            if priority == Priority.HIGH:
                await self._enqueue_redis(queue_type, job_data)

            await self._enqueue_kafka(queue_type, job_data)
            await self._track_job(job_id, job_data)

            logger.info(f"Job {job_id} enqueued to {queue_type.value}")
            return job_id

        except Exception as e:
            logger.error(f"Failed to enqueue job {job_id}: {str(e)}")
            raise

    async def _enqueue_redis(self, queue_type: QueueType, job_data: Dict):
        """Copy to a Redis list for consumers that need the event right away"""
        redis_client = await core.get_redis()
        if not redis_client:
            return

        queue_name = f"{self.redis_queues[queue_type]}:high"

        await redis_client.lpush(queue_name, json.dumps(job_data))
        await redis_client.expire(queue_name, 86400)

    async def _enqueue_kafka(self, queue_type: QueueType, job_data: Dict):
        """Enqueue to Kafka for persistence and scaling"""
        kafka_producer = await core.get_kafka_producer()
        if not kafka_producer:
            return

        topic = self.kafka_topics[queue_type]

        # Partition by user_id so one user's events stay ordered
        partition_key = str(job_data.get('user_id', 0)).encode()

        await kafka_producer.send(
            topic,
            value=json.dumps(job_data).encode('utf-8'),
            key=partition_key
        )

    async def _track_job(self, job_id: str, job_data: Dict):
        """Track job status in Redis"""
        redis_client = await core.get_redis()
        if not redis_client:
            return

        await redis_client.setex(f"job:{job_id}", 3600, json.dumps(job_data))  # 1 hour TTL

# Global queue manager instance
queue_manager = QueueManager()

async def publish_committed(
    queue_type: QueueType,
    data: Dict[str, Any],
    priority: Priority = Priority.NORMAL,
    user_id: Optional[int] = None
) -> Optional[str]:
    """
    Publish an event describing a change that is already committed.
    Broker failures are logged and counted, never raised: the change itself stands.
    """
    try:
        return await queue_manager.enqueue(queue_type, data, priority=priority, user_id=user_id)
    except Exception as e:
        EVENT_PUBLISH_FAILURES.labels(queue_type.value).inc()
        logger.warning({'msg': 'event_publish_failed', 'queue': queue_type.value, 'error': str(e)})
        return None

async def enqueue_follow_event(actor_id: int, target_id: int, action: str, followers_count: int):
    """Queue a committed follow/unfollow for downstream consumers"""
    return await publish_committed(
        QueueType.FOLLOWS,
        {
            "actor_id": actor_id,
            "target_id": target_id,
            "action": action,
            "followers_count": followers_count
        },
        priority=Priority.HIGH,
        user_id=target_id
    )

async def enqueue_user_activity(user_id: int, activity_type: str, data: Dict):
    """Queue user activity logging"""
    return await publish_committed(
        QueueType.USER_ACTIVITY,
        {
            "user_id": user_id,
            "activity_type": activity_type,
            "data": data
        },
        priority=Priority.LOW,
        user_id=user_id
    )

async def enqueue_counter_audit(drift_items: list, source: str):
    """Queue drift corrections so operators can subscribe to them"""
    return await publish_committed(
        QueueType.COUNTER_AUDIT,
        {
            "source": source,
            "drift_items": drift_items
        },
        priority=Priority.NORMAL
    )
