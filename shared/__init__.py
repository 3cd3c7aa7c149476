"""
Shared utilities for the Claim Assignment Service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with claim correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators and backoff calculation
- circuit_breaker: Resilient external call protection

Do not import from service_* packages into shared/.
"""
