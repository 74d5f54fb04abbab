from .webhook_limiter import RateLimitDecision, WebhookRateLimiter, client_id

__all__ = ["RateLimitDecision", "WebhookRateLimiter", "client_id"]
