""" Reconciliation engine for Website resources.

The decision of what to do with a Website once its children exist is the pure
function :func:`decide`. :class:`WebsiteReconciler` performs the cluster and
backend calls around it: ensure ConfigMap, Pod and Service exist, read their
live state, then apply the decided outcome.
"""

import datetime
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from kubernetes.client.exceptions import ApiException

from cloudself import config
from cloudself.exception import BackendError, ProvisioningError
from cloudself.models.website import GROUP, PLURAL, VERSION, WebsitePhase
from cloudself.services import resources
from cloudself.services.kube import api_error_message

logger = logging.getLogger(__name__)

POD_RUNNING = "Running"


class Action(str, Enum):
    SKIP = "skip"
    REQUEUE = "requeue"
    PROVISION = "provision"
    FAIL = "fail"


@dataclass
class BackendPush:
    """Status update intended for one backend record."""

    record_id: int
    status: str
    pod_ip_address: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class Outcome:
    """Result of one reconciliation pass."""

    action: Action
    reason: str
    status_patch: Optional[dict] = None
    backend_push: Optional[BackendPush] = None
    requeue_after: Optional[float] = None


def now_rfc3339():
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def is_provisioned(status):
    """Whether a Website status already records a reachable endpoint."""
    status = status or {}
    return (
        status.get("status") == WebsitePhase.PROVISIONED.value
        and bool(status.get("podIpAddress"))
    )


def pod_phase(pod):
    status = getattr(pod, "status", None)
    return getattr(status, "phase", None)


def assigned_node_port(service):
    """First node port Kubernetes assigned to the Service, or None."""
    spec = getattr(service, "spec", None)
    for port in getattr(spec, "ports", None) or []:
        if port.node_port:
            return port.node_port
    return None


def access_descriptor(node_port, node_address=""):
    """Address users reach the site on.

    With no node address the descriptor is ":<port>" and the node is resolved
    by whoever opens the site.
    """
    return f"{node_address}:{node_port}"


def decide(
    backend_id,
    phase,
    node_port,
    node_address="",
    requeue_delay=5.0,
    timestamp=None,
):
    """ Decide the outcome of a pass once all children exist.

    Args:
        backend_id: Backend record id of the Website
        phase: Live phase of the nginx Pod
        node_port: Node port assigned to the Service, None if not yet assigned
        node_address: Optional node address used in the access descriptor
        requeue_delay: Seconds to wait before the next pass when not ready
        timestamp: lastReconcileTime to record, defaults to now
    """
    if phase != POD_RUNNING:
        return Outcome(
            Action.REQUEUE,
            f"Pod not ready yet (phase {phase or 'unknown'})",
            requeue_after=requeue_delay,
        )

    if not node_port:
        return Outcome(
            Action.REQUEUE,
            "NodePort not yet assigned",
            requeue_after=requeue_delay,
        )

    address = access_descriptor(node_port, node_address)
    return Outcome(
        Action.PROVISION,
        f"Pod is running and Service is reachable at {address}",
        status_patch={
            "status": WebsitePhase.PROVISIONED.value,
            "podIpAddress": address,
            "errorMessage": None,
            "lastReconcileTime": timestamp or now_rfc3339(),
        },
        backend_push=BackendPush(
            backend_id, WebsitePhase.PROVISIONED.value, pod_ip_address=address
        ),
    )


def failure_outcome(backend_id, message, timestamp=None):
    """Outcome for a child object that could not be created."""
    return Outcome(
        Action.FAIL,
        message,
        status_patch={
            "status": WebsitePhase.FAILED.value,
            "errorMessage": message,
            "lastReconcileTime": timestamp or now_rfc3339(),
        },
        backend_push=BackendPush(
            backend_id, WebsitePhase.FAILED.value, error_message=message
        ),
    )


class WebsiteReconciler:
    """ Drives one Website towards a running nginx Pod behind a NodePort Service.

    Passes are idempotent: "already exists" on a child counts as success and
    the live object is read back instead.
    """

    def __init__(
        self,
        core_api,
        custom_api,
        backend,
        node_address=None,
        requeue_delay=None,
        image=None,
        request_timeout=None,
    ):
        self.core_api = core_api
        self.custom_api = custom_api
        self.backend = backend
        self.node_address = (
            node_address if node_address is not None else config.get_node_address()
        )
        self.requeue_delay = (
            requeue_delay if requeue_delay is not None else config.get_requeue_delay()
        )
        self.image = image or config.get_nginx_image()
        self.request_timeout = (
            request_timeout
            if request_timeout is not None
            else config.get_kube_request_timeout()
        )

    def reconcile(self, name, namespace):
        """ Run one reconciliation pass for a Website.

        Raises:
            ProvisioningError: a child object could not be created
        """
        website = self._get_website(name, namespace)
        if website is None:
            logger.info(f"Website {namespace}/{name} not found, nothing to reconcile")
            return Outcome(Action.SKIP, "Website not found")

        if is_provisioned(website.get("status")):
            logger.debug(f"Website {namespace}/{name} already provisioned")
            return Outcome(Action.SKIP, "Website already provisioned")

        spec = website["spec"]
        website_name = spec["websiteName"]
        owner = resources.owner_reference(website)

        config_map = resources.build_config_map(
            website_name, spec["htmlContent"], namespace
        )
        self._ensure(
            website,
            "ConfigMap",
            config_map,
            owner,
            self.core_api.create_namespaced_config_map,
        )

        pod = self._ensure(
            website,
            "Pod",
            resources.build_pod(website_name, namespace, self.image),
            owner,
            self.core_api.create_namespaced_pod,
            self.core_api.read_namespaced_pod,
        )

        service = self._ensure(
            website,
            "Service",
            resources.build_service(website_name, namespace),
            owner,
            self.core_api.create_namespaced_service,
            self.core_api.read_namespaced_service,
        )

        outcome = decide(
            spec["backendId"],
            pod_phase(pod),
            assigned_node_port(service),
            node_address=self.node_address,
            requeue_delay=self.requeue_delay,
        )

        if outcome.action == Action.REQUEUE:
            logger.info(f"Website {namespace}/{name}: {outcome.reason}, requeueing")
            return outcome

        # The Website's own status must be durable before the backend hears about it
        self._write_status(name, namespace, outcome.status_patch)
        self._push(outcome.backend_push)
        logger.info(f"Website {namespace}/{name} provisioned: {outcome.reason}")
        return outcome

    def _get_website(self, name, namespace):
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=GROUP,
                version=VERSION,
                namespace=namespace,
                plural=PLURAL,
                name=name,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            logger.error(f"Failed to get Website {namespace}/{name}: {e}")
            raise

    def _ensure(self, website, kind, body, owner, create, read=None):
        """ Create a child object, treating "already exists" as success.

        Returns the live object: the create response, or a fresh read when the
        object already existed and a reader is given.
        """
        name = body.metadata.name
        namespace = body.metadata.namespace
        body.metadata.owner_references = [owner]

        try:
            created = create(
                namespace=namespace, body=body, _request_timeout=self.request_timeout
            )
            logger.info(f"Created {kind} {namespace}/{name}")
            return created
        except ApiException as e:
            if e.status == 409:
                logger.info(f"{kind} {namespace}/{name} already exists")
                if read is None:
                    return None
                return read(
                    name=name, namespace=namespace, _request_timeout=self.request_timeout
                )
            error = api_error_message(e)
        except Exception as e:
            error = str(e)

        message = f"Failed to create {kind}: {error}"
        logger.error(f"Website {website['metadata']['name']}: {message}")
        self._fail(website, message)
        raise ProvisioningError(website["metadata"]["name"], message)

    def _fail(self, website, message):
        outcome = failure_outcome(website["spec"]["backendId"], message)
        self._push(outcome.backend_push)

        metadata = website["metadata"]
        try:
            self._write_status(metadata["name"], metadata["namespace"], outcome.status_patch)
        except ApiException as e:
            logger.error(
                f"Failed to record failure on Website {metadata['name']}: {e.reason}"
            )

    def _write_status(self, name, namespace, status_patch):
        self.custom_api.patch_namespaced_custom_object_status(
            group=GROUP,
            version=VERSION,
            namespace=namespace,
            plural=PLURAL,
            name=name,
            body={"status": status_patch},
            _request_timeout=self.request_timeout,
        )

    def _push(self, push):
        try:
            self.backend.push_status(
                push.record_id,
                push.status,
                pod_ip_address=push.pod_ip_address,
                error_message=push.error_message,
            )
        except BackendError as e:
            logger.error(
                f"Failed to update backend status for website {push.record_id} "
                f"to {push.status}: {e}"
            )
            return False
        return True
