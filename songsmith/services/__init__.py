"""Request quota service for Songsmith."""

from songsmith.services.quota import QuotaService, QuotaContext, QuotaExceededError

__all__ = ["QuotaService", "QuotaContext", "QuotaExceededError"]
