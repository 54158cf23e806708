"""Error taxonomy for the gateway.

Every error carries a short ``kind`` so the dispatcher can report a
categorized failure on the response instead of raising past the facade.
"""
from __future__ import annotations


class GatewayError(Exception):
    kind = "gateway_error"


class NotConfigured(GatewayError):
    kind = "not_configured"


class InvalidProviderId(GatewayError):
    kind = "invalid_provider"


class PolicyRejected(GatewayError):
    kind = "policy_rejected"


class BackendFailure(GatewayError):
    kind = "backend_failure"


class IndexingFailure(GatewayError):
    kind = "indexing_failure"


class ValidationError(GatewayError):
    kind = "validation"


class ConfigError(GatewayError):
    kind = "config"


class GatewayBusy(GatewayError):
    kind = "busy"
