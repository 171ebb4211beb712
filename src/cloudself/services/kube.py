""" Kubernetes client helpers shared by the operator services.
"""

import json
import logging

import kubernetes

logger = logging.getLogger(__name__)


def load_kube_config():
    """ Load in-cluster config, falling back to the local kubeconfig.
    """
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()
        logger.info("Loaded local Kubernetes config")


def api_error_message(error):
    """ Human-readable message of an ApiException.

    The API server puts the useful text in the JSON Status body; fall back to
    the HTTP reason when the body is not a Status.
    """
    body = getattr(error, "body", None)
    if body:
        try:
            message = json.loads(body).get("message")
        except (ValueError, AttributeError):
            message = None
        if message:
            return message
    reason = getattr(error, "reason", None)
    status = getattr(error, "status", None)
    if reason:
        return f"({status}) {reason}" if status else str(reason)
    return str(error)
