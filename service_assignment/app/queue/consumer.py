"""
RabbitMQ consumer for the Claim Assignment Service.

One consumer per process with prefetch=1, so claims are processed strictly
one at a time. Every delivered message is settled exactly once: ack when the
outcome is final (including drops of malformed or unroutable claims), nack
without requeue when processing failed unexpectedly.
"""

import asyncio
import json
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractIncomingMessage, AbstractQueue

from shared.config import BaseConfig
from shared.errors import MalformedMessageError, QueueConnectionError, ValidationError
from shared.logging import clear_context, get_logger, mask_url, set_message_context
from shared.metrics import MetricsCollector

from ..assignment.selector import LeastLoadSelector
from ..assignment.writer import AssignmentWriter
from ..domain.assignment import Assignment
from ..domain.claim import Claim
from ..notifications.notifier import AssignmentNotifier, build_dispute, build_resolver_data
from ..persistence.repositories import ConfigurationRepository
from ..rules.processor import BusinessRuleProcessor, ClaimProcessingResult
from ..rules.specificity import EligibleUser
from .message import parse_claim_message

ConnectionFactory = Callable[..., Awaitable[AbstractConnection]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CONSUMING = "consuming"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


class MessageOutcome(str, Enum):
    """Terminal outcome of one delivered message."""
    MALFORMED = "malformed"
    INVALID = "invalid"
    DROPPED = "dropped"
    PENDING = "pending"
    ASSIGNED = "assigned"
    FAILED = "failed"

    @property
    def acknowledged(self) -> bool:
        return self is not MessageOutcome.FAILED


class AssignmentQueueConsumer:
    """Consumes claim messages and turns them into assignments."""

    def __init__(self,
                 processor: BusinessRuleProcessor,
                 selector: LeastLoadSelector,
                 writer: AssignmentWriter,
                 settings: BaseConfig,
                 configuration_repository: Optional[ConfigurationRepository] = None,
                 notifier: Optional[AssignmentNotifier] = None,
                 metrics: Optional[MetricsCollector] = None,
                 connection_factory: ConnectionFactory = aio_pika.connect):
        self.processor = processor
        self.selector = selector
        self.writer = writer
        self.configuration_repository = configuration_repository
        self.notifier = notifier
        self.metrics = metrics
        self.connection_factory = connection_factory

        self.queue_url = settings.queue_url
        self.queue_name = settings.queue_name
        self.queue_durable = settings.queue_durable
        self.max_reconnect_attempts = settings.max_reconnect_attempts
        self.reconnect_delay = settings.reconnect_delay_seconds
        self.prefetch_count = 1

        if settings.prefetch_count != 1:
            get_logger("assignment.queue").warning(
                "Ignoring prefetch_count; claims are processed one at a time",
                configured=settings.prefetch_count
            )

        self.logger = get_logger("assignment.queue")
        self.state = ConnectionState.DISCONNECTED
        self.reconnect_attempts = 0

        self.connection: Optional[AbstractConnection] = None
        self.channel: Optional[AbstractChannel] = None
        self.queue: Optional[AbstractQueue] = None
        self._consumer_tag: Optional[str] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_connected(self) -> bool:
        return self.state in (ConnectionState.CONNECTED, ConnectionState.CONSUMING)

    async def connect(self):
        """Open the connection and channel and declare the queue."""
        if not self.queue_url:
            raise QueueConnectionError("Queue URL is not configured")

        self.state = ConnectionState.CONNECTING
        self.logger.info("Connecting to message broker", url=mask_url(self.queue_url), queue=self.queue_name)

        connection: Optional[AbstractConnection] = None
        try:
            connection = await self.connection_factory(self.queue_url)
            channel = await connection.channel()
            await channel.set_qos(prefetch_count=self.prefetch_count)
            queue = await channel.declare_queue(self.queue_name, durable=self.queue_durable)
        except Exception as e:
            self.state = ConnectionState.DISCONNECTED
            self.logger.error("Failed to connect to message broker", error=str(e))
            await self._release(connection)
            raise QueueConnectionError(
                "Failed to connect to message broker",
                {"queue": self.queue_name, "error": str(e)}
            ) from e

        connection.close_callbacks.add(self._on_connection_closed)

        self.connection = connection
        self.channel = channel
        self.queue = queue
        self.state = ConnectionState.CONNECTED
        self.logger.info("Connected to message broker", queue=self.queue_name, prefetch=self.prefetch_count)

    async def start_consuming(self):
        """Register the message callback with manual acknowledgement."""
        if self.queue is None or not self.is_connected:
            raise QueueConnectionError("Not connected to message broker")

        try:
            self._consumer_tag = await self.queue.consume(self._on_message, no_ack=False)
        except Exception as e:
            self.logger.error("Failed to start consuming", queue=self.queue_name, error=str(e))
            raise QueueConnectionError("Failed to start consuming", {"error": str(e)}) from e

        self.state = ConnectionState.CONSUMING
        self.logger.info("Consuming claim messages", queue=self.queue_name)

    async def start(self):
        """Connect and start consuming.

        A successful start begins a fresh reconnect budget. If consuming cannot
        start, the connection opened by ``connect`` is closed again.
        """
        await self.connect()
        try:
            await self.start_consuming()
        except QueueConnectionError:
            connection = self.connection
            self.connection = None
            self.channel = None
            self.queue = None
            self.state = ConnectionState.DISCONNECTED
            await self._release(connection)
            raise

        self.reconnect_attempts = 0
        self._publish_reconnect_attempts()

    async def _release(self, connection: Optional[AbstractConnection]):
        """Close a connection that never reached the consuming state."""
        if connection is None:
            return
        # Closing it must not look like a broker drop
        connection.close_callbacks.discard(self._on_connection_closed)
        try:
            await connection.close()
        except Exception as e:
            self.logger.warning("Failed to close broker connection", error=str(e))

    def _on_connection_closed(self, sender: Any, exc: Optional[BaseException] = None):
        if self.state == ConnectionState.STOPPED:
            return

        self.logger.warning(
            "Message broker connection closed",
            error=str(exc) if exc else None,
            previous_state=self.state.value
        )
        self.state = ConnectionState.DISCONNECTED
        self.connection = None
        self.channel = None
        self.queue = None
        self._consumer_tag = None
        self._schedule_reconnect()

    def _schedule_reconnect(self):
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.ensure_future(self.attempt_reconnect())

    async def attempt_reconnect(self) -> bool:
        """Bounded reconnect with a fixed delay.

        Returns True once consuming again. After ``max_reconnect_attempts``
        failures the consumer stays disconnected until restarted manually.
        """
        while self.reconnect_attempts < self.max_reconnect_attempts:
            if self.state == ConnectionState.STOPPED:
                return False

            self.reconnect_attempts += 1
            self.state = ConnectionState.RECONNECTING
            self._publish_reconnect_attempts()
            self.logger.warning(
                "Reconnecting to message broker",
                attempt=self.reconnect_attempts,
                max_attempts=self.max_reconnect_attempts,
                delay_seconds=self.reconnect_delay
            )

            await asyncio.sleep(self.reconnect_delay)
            if self.state == ConnectionState.STOPPED:
                return False

            try:
                await self.start()
            except QueueConnectionError as e:
                self.logger.error("Reconnect attempt failed", attempt=self.reconnect_attempts, error=e.message)
                continue

            self.logger.info("Reconnected to message broker", queue=self.queue_name)
            return True

        self.state = ConnectionState.DISCONNECTED
        self.logger.critical(
            "Exhausted reconnect attempts; manual intervention required",
            attempts=self.reconnect_attempts,
            queue=self.queue_name
        )
        return False

    def _publish_reconnect_attempts(self):
        if self.metrics:
            self.metrics.set_reconnect_attempts(self.reconnect_attempts)

    async def _on_message(self, message: AbstractIncomingMessage):
        self._in_flight += 1
        self._idle.clear()
        try:
            await self.process_message(message)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    async def process_message(self, message: AbstractIncomingMessage) -> MessageOutcome:
        """Process one delivery and settle it exactly once."""
        set_message_context(message_id=message.message_id)
        started = time.perf_counter()

        try:
            outcome = await self._dispatch(message)
        except MalformedMessageError as e:
            self.logger.error("Dropping malformed message", error=e.message, details=e.details)
            outcome = MessageOutcome.MALFORMED
        except ValidationError as e:
            self.logger.error("Dropping invalid claim message", error=e.message, details=e.details)
            outcome = MessageOutcome.INVALID
        except Exception as e:
            self.logger.exception("Unexpected error processing claim message", error=str(e))
            if self.metrics:
                self.metrics.record_error(type(e).__name__)
            outcome = MessageOutcome.FAILED

        try:
            if outcome.acknowledged:
                await message.ack()
            else:
                await message.nack(requeue=False)
        except Exception as e:
            self.logger.error("Failed to settle message", outcome=outcome.value, error=str(e))
        finally:
            if self.metrics:
                self.metrics.record_message_outcome(outcome.value)
                self.metrics.observe_message_processing(time.perf_counter() - started)
            self.logger.info(
                "Message settled",
                outcome=outcome.value,
                acknowledged=outcome.acknowledged
            )
            clear_context()

        return outcome

    async def _dispatch(self, message: AbstractIncomingMessage) -> MessageOutcome:
        fields, ignored = parse_claim_message(message.body)
        set_message_context(claim_id=fields["ClaimId"], process_id=fields["ProcessId"])

        if ignored:
            self.logger.warning("Ignoring unexpected message fields", fields=ignored)

        claim = Claim.from_message(fields)
        self.logger.info("Processing claim", **claim.basic_info())

        result = await self.processor.process_claim(claim)
        if not result.success:
            self.logger.warning(
                "Claim not routed",
                outcome=result.outcome.value,
                reason=result.message
            )
            return MessageOutcome.DROPPED

        if not result.users:
            assignment = await self.writer.write(None, result.company.id, claim, result)
            self._record_assignment(assignment)
            self.logger.warning(
                "No eligible users; assignment left pending",
                outcome=result.outcome.value,
                assignment_id=assignment.id
            )
            return MessageOutcome.PENDING

        selected = await self.selector.select_user(result.users)
        assignment = await self.writer.write(selected, result.company.id, claim, result)
        self._record_assignment(assignment)

        await self._notify(assignment, selected, result, fields)
        return MessageOutcome.ASSIGNED

    def _record_assignment(self, assignment: Assignment):
        if self.metrics:
            self.metrics.record_assignment(assignment.status.value)

    async def _notify(self,
                      assignment: Assignment,
                      selected: EligibleUser,
                      result: ClaimProcessingResult,
                      fields: Mapping[str, Any]):
        """Best-effort notification; failures never undo the assignment."""
        if self.notifier is None or self.configuration_repository is None:
            return

        company = result.company
        try:
            configuration = await self.configuration_repository.find_by_company_id(company.id)
            if configuration is None or not configuration.is_active:
                self.logger.warning(
                    "No active notification configuration; skipping notification",
                    company_id=company.id
                )
                self._record_notification("skipped")
                return

            disputes = [build_dispute(assignment.document_number, assignment.claim_id, selected.user.dud)]
            resolver_data = build_resolver_data(
                assignment={
                    "id": assignment.id,
                    "processId": fields.get("ProcessId"),
                    "source": fields.get("Source"),
                    "target": fields.get("Target"),
                    "documentNumber": fields.get("DocumentNumber"),
                    "documentType": fields.get("DocumentType"),
                    "claimId": fields.get("ClaimId"),
                    "invoiceAmount": fields.get("InvoiceAmount"),
                    "value": fields.get("Value"),
                    "objectionCode": fields.get("ObjectionCode"),
                    "conceptApplicationCode": fields.get("ConceptApplicationCode"),
                    "externalReference": fields.get("ExternalReference"),
                    "companyId": company.id,
                    "userId": selected.id,
                },
                user={
                    "id": selected.user.id,
                    "name": selected.user.name,
                    "dud": selected.user.dud,
                    "companyId": selected.user.company_id,
                },
                company={
                    "id": company.id,
                    "name": company.name,
                    "documentNumber": company.document_number,
                    "documentType": company.document_type,
                    "type": company.type,
                },
            )

            await self.notifier.notify(configuration, disputes, resolver_data)
            self._record_notification("sent")
        except Exception as e:
            self.logger.error(
                "Assignment notification failed",
                company_id=company.id,
                assignment_id=assignment.id,
                error=str(e)
            )
            self._record_notification("failed")

    def _record_notification(self, result: str):
        if self.metrics:
            self.metrics.record_notification(result)

    async def stop(self):
        """Stop consuming and close the channel, then the connection. Idempotent."""
        if self.state == ConnectionState.STOPPED:
            return

        self.state = ConnectionState.STOPPED

        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass

        if self.queue is not None and self._consumer_tag is not None:
            try:
                await self.queue.cancel(self._consumer_tag)
            except Exception as e:
                self.logger.warning("Failed to cancel consumer", error=str(e))

        await self._idle.wait()

        if self.channel is not None and not self.channel.is_closed:
            await self.channel.close()
        if self.connection is not None and not self.connection.is_closed:
            await self.connection.close()

        self.channel = None
        self.connection = None
        self.queue = None
        self._consumer_tag = None
        self.logger.info("Queue consumer stopped", queue=self.queue_name)

    def get_status(self) -> Dict[str, Any]:
        """Connection snapshot for health checks."""
        return {
            "is_connected": self.is_connected,
            "queue_name": self.queue_name,
            "reconnect_attempts": self.reconnect_attempts,
            "max_reconnect_attempts": self.max_reconnect_attempts,
            "connection_status": _resource_status(self.connection),
            "channel_status": _resource_status(self.channel),
            "state": self.state.value,
        }

    async def send_test_message(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Publish a persistent message straight to the consumed queue."""
        if self.channel is None or not self.is_connected:
            raise QueueConnectionError("Not connected to message broker")

        message_id = f"test_{int(time.time() * 1000)}"
        message = aio_pika.Message(
            body=json.dumps(dict(payload)).encode("utf-8"),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=message_id,
            timestamp=datetime.now(timezone.utc),
        )

        try:
            await self.channel.default_exchange.publish(message, routing_key=self.queue_name)
        except Exception as e:
            self.logger.error("Failed to publish test message", error=str(e))
            raise QueueConnectionError("Failed to publish test message", {"error": str(e)}) from e

        self.logger.info("Test message published", message_id=message_id, queue=self.queue_name)
        return {"message_id": message_id, "queue": self.queue_name}


def _resource_status(resource: Any) -> str:
    if resource is None:
        return "disconnected"
    return "closed" if resource.is_closed else "open"
