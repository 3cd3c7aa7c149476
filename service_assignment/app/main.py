"""
Claim Assignment Service.

Consumes claim messages from the assignment queue, routes each claim to the
least-loaded eligible reviewer of the source company and notifies the
company's orchestrator. The HTTP surface is diagnostic only.
"""

from typing import Any, Dict, Optional

import aio_pika
from fastapi import Body

from shared.base_service import BaseService
from shared.circuit_breaker import CircuitBreakerManager
from shared.config import ServiceConfig
from shared.errors import ConfigurationError, QueueConnectionError
from shared.logging import mask_url
from shared.retry import RetryConfig, RetryError, retry_on_exception

from .assignment.selector import LeastLoadSelector
from .assignment.writer import AssignmentWriter
from .notifications.notifier import AssignmentNotifier, OrchestratorNotifier
from .persistence.postgres import PostgreSQLPersistence, build_repositories
from .queue.consumer import AssignmentQueueConsumer, ConnectionFactory
from .rules.processor import BusinessRuleProcessor


class AssignmentService(BaseService):
    """Assignment service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 persistence: Optional[PostgreSQLPersistence] = None,
                 repositories: Optional[Dict[str, Any]] = None,
                 notifier: Optional[AssignmentNotifier] = None,
                 connection_factory: ConnectionFactory = aio_pika.connect):
        super().__init__("assignment", 8010, config=config)

        self.persistence = persistence or PostgreSQLPersistence(self.config.postgres_dsn)
        repositories = repositories or build_repositories(self.persistence)

        self.processor = BusinessRuleProcessor(
            company_repository=repositories["companies"],
            rule_repository=repositories["rules"],
            rule_role_repository=repositories["rule_roles"],
            user_role_repository=repositories["user_roles"]
        )
        self.selector = LeastLoadSelector(repositories["assignments"])
        self.writer = AssignmentWriter(repositories["assignments"])

        self.notifier = notifier or OrchestratorNotifier(
            timeout=self.config.notification_timeout_seconds,
            token_ttl_seconds=self.config.notification_token_ttl_seconds,
            verify_tls=self.config.notification_verify_tls,
            breakers=CircuitBreakerManager(
                failure_threshold=self.config.notification_failure_threshold,
                recovery_timeout=self.config.notification_recovery_timeout_seconds
            )
        )

        self.consumer = AssignmentQueueConsumer(
            processor=self.processor,
            selector=self.selector,
            writer=self.writer,
            settings=self.config,
            configuration_repository=repositories["configurations"],
            notifier=self.notifier,
            metrics=self.metrics,
            connection_factory=connection_factory
        )

        self._setup_assignment_routes()
        self.app.state.assignment_service = self

    def _setup_assignment_routes(self):
        """Set up assignment-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "assignment",
                "message": "Claim Assignment Service",
                "version": "1.0.0",
                "queue": self.config.queue_name
            }

        @self.app.get("/queue/status")
        async def queue_status():
            """Consumer connection state."""
            return self.consumer.get_status()

        @self.app.post("/queue/test-message")
        async def queue_test_message(payload: Dict[str, Any] = Body(...)):
            """Publish a message to the assignment queue for smoke testing."""
            result = await self.consumer.send_test_message(payload)
            return {"status": "published", **result}

        @self.app.get("/business-rules/companies/{company_id}/stats")
        async def company_rule_stats(company_id: int):
            """Rule counts for a company."""
            return await self.processor.get_company_rule_stats(company_id)

        @self.app.post("/business-rules/rules/{rule_id}/test")
        async def test_rule(rule_id: int, claim: Dict[str, Any] = Body(...)):
            """Dry-run one rule against claim data."""
            return await self.processor.test_rule_against_claim(rule_id, claim)

        @self.app.post("/business-rules/process")
        async def process_claim(claim: Dict[str, Any] = Body(...)):
            """Run rule processing for a claim without creating an assignment."""
            result = await self.processor.process_claim(claim)
            return result.to_dict()

    def validate_environment(self):
        """Fail fast when the queue cannot be started."""
        if not self.config.queue_url:
            raise ConfigurationError(
                "ASSIGNMENT_QUEUE_URL must be set to start the queue consumer",
                {"setting": "queue_url"}
            )

    async def start_queue(self) -> bool:
        """Start the consumer, retrying broker failures a few times.

        Returns False if every attempt failed; the service keeps serving HTTP.
        """
        self.validate_environment()
        self.logger.info(
            "Starting assignment queue",
            url=mask_url(self.config.queue_url),
            queue=self.config.queue_name
        )

        retry_config = RetryConfig(
            max_attempts=self.config.startup_max_retries,
            base_delay=self.config.startup_retry_delay_seconds,
            backoff_strategy="fixed",
            jitter=False
        )

        @retry_on_exception((QueueConnectionError,), retry_config)
        async def _start_consumer():
            await self.consumer.start()

        try:
            await _start_consumer()
        except RetryError as e:
            self.logger.error(
                "Assignment queue did not start; running without a consumer",
                attempts=e.attempts,
                error=str(e.last_exception)
            )
            return False

        self.logger.info("Assignment queue started", queue=self.config.queue_name)
        return True

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Check assignment service dependencies."""
        dependencies: Dict[str, Any] = {}

        dependencies["database"] = "ok" if await self.persistence.health_check() else "error"
        dependencies["queue"] = self.consumer.get_status()

        return dependencies

    def _overall_status(self, dependencies: Dict[str, Any]) -> str:
        if dependencies.get("database") != "ok":
            return "degraded"
        # A consumer that was never meant to start is not a fault
        if self.config.auto_start_queue and not dependencies["queue"]["is_connected"]:
            return "degraded"
        return "ok"

    async def start(self):
        """Start assignment service components."""
        await self.persistence.start()

        if self.config.auto_start_queue:
            await self.start_queue()
        else:
            self.logger.info("Queue auto-start disabled")

        self.logger.info("Assignment service components started")

    async def stop(self):
        """Stop assignment service components."""
        await self.consumer.stop()
        await self.notifier.close()
        await self.persistence.stop()

        self.logger.info("Assignment service components stopped")


def create_app():
    """Create assignment service application."""
    service = AssignmentService()
    return service.app


if __name__ == "__main__":
    service = AssignmentService()
    service.run()
