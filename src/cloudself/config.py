"""Operator configuration read from the environment."""

import os

DEFAULT_BACKEND_URL = "http://localhost:3000"
DEFAULT_NAMESPACE = "default"
DEFAULT_NGINX_IMAGE = "nginx:1.25-alpine"
MANAGER_NAME = "cloudself-provisioner"


def _get_bool(key, default):
    return os.environ.get(key, default).lower() in ("true", "1", "yes")


def get_backend_url():
    """ Base URL of the CloudSelf backend API.
    """
    return os.environ.get("BACKEND_URL", DEFAULT_BACKEND_URL).rstrip("/")


def get_backend_timeout():
    """ Per-request timeout (seconds) for backend calls.
    """
    return float(os.environ.get("BACKEND_TIMEOUT", "30"))


def get_verify_tls():
    return _get_bool("BACKEND_VERIFY_TLS", "true")


def get_website_namespace():
    """ Namespace where Website resources and their children live.
    """
    return os.environ.get("WEBSITE_NAMESPACE", DEFAULT_NAMESPACE)


def get_poll_interval():
    """ Minimum number of seconds between two backend polls.
    """
    return float(os.environ.get("POLL_INTERVAL", "30"))


def get_requeue_delay():
    return float(os.environ.get("REQUEUE_DELAY", "5"))


def get_node_address():
    """ Node address prefixed to the access descriptor, empty to store the port only.
    """
    return os.environ.get("PROVISIONER_NODE_ADDRESS", "")


def get_nginx_image():
    return os.environ.get("NGINX_IMAGE", DEFAULT_NGINX_IMAGE)


def should_manage_crds():
    """Determine if operator should manage CRDs directly."""
    return _get_bool("MANAGE_CRDS", "true")


def should_generate_crd_files():
    """Determine if operator should generate CRD YAML files."""
    return _get_bool("GENERATE_CRD_FILES", "false")


def get_kube_request_timeout():
    """ Per-request timeout (seconds) for Kubernetes API calls.
    """
    return float(os.environ.get("KUBE_REQUEST_TIMEOUT", "30"))
