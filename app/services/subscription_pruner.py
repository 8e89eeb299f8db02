"""Removal of subscriptions whose push endpoint is permanently gone."""
from __future__ import annotations

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.services.subscription_registry import SubscriptionRegistry, short_endpoint


class SubscriptionPruner:
    """Deactivate dead endpoints reported by the transport.

    Pruning is idempotent: an endpoint that is unknown or already inactive is
    left as is, so overlapping campaigns can prune the same endpoint safely.
    """

    def __init__(self, registry: SubscriptionRegistry):
        self.registry = registry

    def prune(self, endpoint: str) -> bool:
        try:
            removed = self.registry.deactivate(endpoint)
        except SQLAlchemyError as exc:
            self.registry.db.rollback()
            logger.error(
                "Failed to prune subscription",
                endpoint=short_endpoint(endpoint),
                error=str(exc),
            )
            return False

        if removed:
            logger.info("Removed expired subscription", endpoint=short_endpoint(endpoint))
        else:
            logger.debug("Subscription already pruned", endpoint=short_endpoint(endpoint))
        return removed
