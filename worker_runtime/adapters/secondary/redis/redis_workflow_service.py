import json

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from worker_runtime.domain.sticky.value_objects.execution_key import ExecutionKey
from worker_runtime.domain.workflow.exceptions import BadRequestError, ServiceUnavailableError
from worker_runtime.ports.secondary.workflow_service import (
    DecisionResult,
    DecisionTask,
    IWorkflowService,
)
from worker_runtime.shared.config import settings
from worker_runtime.shared.logger import get_logger

logger = get_logger(__name__)

# Deletes the routing hash unless it was re-pointed by a newer generation.
RESET_STICKY_SCRIPT = """
local current = redis.call('HGET', KEYS[1], 'generation')
if current and tonumber(current) > tonumber(ARGV[1]) then
    return 0
end
return redis.call('DEL', KEYS[1])
"""


class RedisWorkflowService(IWorkflowService):
    """Redis Streams implementation of the orchestration service client.

    Decision tasks live in one stream per task list (normal and sticky alike), read
    through a consumer group. Sticky routing for an execution is a hash holding the
    sticky task list and the cache generation of the worker that asked for it.
    """

    STREAM_PREFIX = settings.STREAM_DECISION_PREFIX
    GROUP = settings.STREAM_DECISION_GROUP
    COMPLETION_STREAM = settings.STREAM_COMPLETION_KEY
    ROUTING_PREFIX = settings.STICKY_ROUTING_PREFIX

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    def stream_key(self, task_list: str) -> str:
        return f"{self.STREAM_PREFIX}{task_list}"

    def routing_key(self, key: ExecutionKey) -> str:
        return f"{self.ROUTING_PREFIX}{key.workflow_id}:{key.run_id}"

    async def create_consumer_group(self, task_list: str) -> None:
        try:
            await self._redis.xgroup_create(self.stream_key(task_list), self.GROUP, id="0", mkstream=True)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def poll_for_decision_tasks(
        self,
        task_list: str,
        sticky_task_list: str | None,
        identity: str,
        block_ms: int = 2000,
    ) -> list[DecisionTask]:
        streams = {self.stream_key(task_list): ">"}
        if sticky_task_list:
            streams[self.stream_key(sticky_task_list)] = ">"

        try:
            messages = await self._redis.xreadgroup(
                self.GROUP, identity, streams, count=1, block=block_ms
            )
        except ResponseError as e:
            if "NOGROUP" in str(e):
                await self.create_consumer_group(task_list)
                if sticky_task_list:
                    await self.create_consumer_group(sticky_task_list)
                return []
            raise
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise ServiceUnavailableError("poll_for_decision_tasks", str(e)) from e

        tasks = []
        if messages:
            for stream, stream_messages in messages:
                for message_id, data in stream_messages:
                    task = self._parse_task(stream, message_id, data)
                    if task is None:
                        await self._redis.xack(stream, self.GROUP, message_id)
                        continue
                    tasks.append(task)
        return tasks

    async def respond_decision_task_completed(
        self,
        task: DecisionTask,
        result: DecisionResult,
        sticky_task_list: str | None,
        sticky_generation: int = 0,
    ) -> None:
        routing_key = self.routing_key(task.execution_key)
        try:
            await self._redis.xadd(
                self.COMPLETION_STREAM,
                {
                    "task_token": task.task_token,
                    "workflow_id": task.workflow_id,
                    "run_id": task.run_id,
                    "decisions": json.dumps(result.decisions),
                    "completed": "1" if result.completed else "0",
                    "sticky_task_list": sticky_task_list or "",
                },
                maxlen=settings.STREAM_MAX_LEN,
                approximate=True,
            )
            if result.completed:
                await self._redis.delete(routing_key)
            elif sticky_task_list:
                await self._redis.hset(
                    routing_key,
                    mapping={"task_list": sticky_task_list, "generation": sticky_generation},
                )
            await self._acknowledge(task)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise ServiceUnavailableError("respond_decision_task_completed", str(e)) from e
        except TypeError as e:
            raise BadRequestError("respond_decision_task_completed", str(e)) from e

    async def respond_decision_task_failed(self, task: DecisionTask, cause: str) -> None:
        try:
            await self._redis.xadd(
                self.COMPLETION_STREAM,
                {
                    "task_token": task.task_token,
                    "workflow_id": task.workflow_id,
                    "run_id": task.run_id,
                    "failed": "1",
                    "cause": cause,
                },
                maxlen=settings.STREAM_MAX_LEN,
                approximate=True,
            )
            # a failed decision is retried from full history on the normal task list
            await self._redis.delete(self.routing_key(task.execution_key))
            await self._acknowledge(task)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise ServiceUnavailableError("respond_decision_task_failed", str(e)) from e

    async def reset_sticky_task_list(
        self, key: ExecutionKey, task_list: str, generation: int
    ) -> None:
        try:
            removed = await self._redis.eval(
                RESET_STICKY_SCRIPT, 1, self.routing_key(key), generation
            )
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise ServiceUnavailableError("reset_sticky_task_list", str(e)) from e

        if not removed:
            logger.debug(
                "sticky_routing_not_reset",
                workflow_id=key.workflow_id,
                run_id=key.run_id,
                task_list=task_list,
                generation=generation,
            )

    async def _acknowledge(self, task: DecisionTask) -> None:
        if task.stream_id and task.source_stream:
            await self._redis.xack(task.source_stream, self.GROUP, task.stream_id)

    def _parse_task(self, stream: str, message_id: str, data: dict) -> DecisionTask | None:
        try:
            return DecisionTask(
                task_token=data["task_token"],
                workflow_id=data["workflow_id"],
                run_id=data["run_id"],
                workflow_type=data["workflow_type"],
                task_list=data["task_list"],
                events=json.loads(data.get("events") or "[]"),
                previous_started_event_id=int(data.get("previous_started_event_id") or 0),
                stream_id=message_id,
                source_stream=stream,
            )
        except (KeyError, ValueError) as e:
            logger.error("malformed_decision_task", stream=stream, message_id=message_id, error=str(e))
            return None
