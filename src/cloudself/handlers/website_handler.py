"""Kopf handlers for Website custom resources."""

import logging

import kopf

from cloudself.exception import ProvisioningError
from cloudself.models.website import GROUP, PLURAL, VERSION
from cloudself.services.reconciler import Action

logger = logging.getLogger(__name__)


def poll_backend(memo):
    """ Give the ingestion poller a chance to run; it rate-limits itself.
    """
    poller = getattr(memo, "poller", None)
    if poller is None:
        return
    try:
        poller.tick()
    except Exception as e:
        logger.error(f"Ingestion poll failed: {e}")


@kopf.on.resume(GROUP, VERSION, PLURAL)
@kopf.on.create(GROUP, VERSION, PLURAL)
@kopf.on.update(GROUP, VERSION, PLURAL, field="spec")
def reconcile_website(name, namespace, body, memo, **kwargs):
    """Operator function for provisioning a Website."""
    poll_backend(memo)

    try:
        outcome = memo.reconciler.reconcile(name, namespace)
    except ProvisioningError as e:
        kopf.exception(body, reason="ProvisioningFailed", message=e.message)
        raise

    if outcome.action == Action.REQUEUE:
        raise kopf.TemporaryError(outcome.reason, delay=outcome.requeue_after)

    if outcome.action == Action.PROVISION:
        kopf.info(
            body,
            reason="Provisioned",
            message=f"Website {name} reachable at {outcome.status_patch['podIpAddress']}",
        )

    return {"action": outcome.action.value}
