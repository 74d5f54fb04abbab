from .messaging_provider import DryRunProvider, GreenAPIProvider, MessagingProvider

__all__ = ["DryRunProvider", "GreenAPIProvider", "MessagingProvider"]
