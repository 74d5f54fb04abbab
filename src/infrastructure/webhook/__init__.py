from .forwarder import WebhookForwarder, build_payload, parse_payload

__all__ = ["WebhookForwarder", "build_payload", "parse_payload"]
