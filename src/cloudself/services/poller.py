""" Ingestion of pending backend websites into Website resources.
"""

import logging
import threading
import time

from kubernetes.client.exceptions import ApiException

from cloudself import config
from cloudself.exception import BackendError
from cloudself.models.website import GROUP, KIND, PLURAL, VERSION, WebsitePhase
from cloudself.services.kube import api_error_message

logger = logging.getLogger(__name__)


def website_body(record, namespace):
    """ Website resource seeded 1:1 from a backend record.

    Raises:
        pydantic.ValidationError: the record does not make a valid Website
    """
    spec = record.to_spec()
    return {
        "apiVersion": f"{GROUP}/{VERSION}",
        "kind": KIND,
        "metadata": {"name": spec.websiteName, "namespace": namespace},
        "spec": spec.model_dump(),
        "status": {"status": WebsitePhase.PENDING.value},
    }


class IngestionPoller:
    """ Creates a Website for every pending backend record, at most once per interval.

    ``tick`` may be called as often as the caller likes; it only reaches the
    backend when ``interval`` seconds have passed since the last real poll.
    """

    def __init__(
        self,
        backend,
        custom_api,
        namespace=None,
        interval=None,
        clock=time.monotonic,
        request_timeout=None,
    ):
        self.backend = backend
        self.custom_api = custom_api
        self.namespace = namespace or config.get_website_namespace()
        self.interval = interval if interval is not None else config.get_poll_interval()
        self.clock = clock
        self.request_timeout = (
            request_timeout if request_timeout is not None else config.get_kube_request_timeout()
        )
        self.last_poll = None
        self._lock = threading.Lock()

    def is_due(self, now):
        return self.last_poll is None or now - self.last_poll >= self.interval

    def tick(self, now=None):
        """ Poll the backend if the interval has elapsed.

        Returns:
            bool: True if a real poll happened
        """
        if not self._lock.acquire(blocking=False):
            return False
        try:
            now = self.clock() if now is None else now
            if not self.is_due(now):
                return False
            self.last_poll = now
            self.poll()
            return True
        finally:
            self._lock.release()

    def poll(self):
        """ Fetch pending records and ingest each one.

        Rows the backend sent but that do not decode as a website record are
        reported ``failed`` when their id is readable, and never block the
        valid rows of the same batch.

        Returns:
            dict: count of records per result (created, exists, skipped, failed)
        """
        counts = {"created": 0, "exists": 0, "skipped": 0, "failed": 0}
        rejected = []

        logger.info("Polling backend for pending websites")
        try:
            records = self.backend.fetch_pending(
                on_invalid=lambda row, error: rejected.append((row, error))
            )
        except BackendError as e:
            logger.error(f"Failed to get pending websites from backend: {e}")
            return counts

        logger.info(f"Found {len(records)} pending websites")
        for row, error in rejected:
            counts[self.reject(row, error)] += 1
        for record in records:
            counts[self.ingest(record)] += 1

        logger.info(f"Ingestion finished: {counts}")
        return counts

    def reject(self, row, error):
        """ Report a backend row that is not a valid website record.

        Returns:
            str: failed if the backend was told, skipped if the row has no usable id
        """
        record_id = row.get("id") if isinstance(row, dict) else None
        if not isinstance(record_id, int) or isinstance(record_id, bool) or record_id < 1:
            logger.error(f"Skipping pending website row without a usable id: {error}")
            return "skipped"

        message = f"Invalid website record: {error}"
        logger.error(f"Website record {record_id}: {message}")
        self._push_failed(record_id, message)
        return "failed"

    def ingest(self, record):
        """ Ensure a Website exists for one backend record.

        Returns:
            str: one of created, exists, skipped, failed
        """
        name = record.website_name
        try:
            self.custom_api.get_namespaced_custom_object(
                group=GROUP,
                version=VERSION,
                namespace=self.namespace,
                plural=PLURAL,
                name=name,
                _request_timeout=self.request_timeout,
            )
            logger.info(f"Website {name} already exists")
            return "exists"
        except ApiException as e:
            if e.status != 404:
                logger.error(f"Failed to check if Website {name} exists: {e.reason}")
                return "skipped"
        except Exception as e:
            logger.error(f"Failed to check if Website {name} exists: {e}")
            return "skipped"

        try:
            body = website_body(record, self.namespace)
            self.custom_api.create_namespaced_custom_object(
                group=GROUP,
                version=VERSION,
                namespace=self.namespace,
                plural=PLURAL,
                body=body,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            error = api_error_message(e)
        except Exception as e:
            error = str(e) or type(e).__name__
        else:
            logger.info(f"Created Website {name} for backend record {record.id}")
            return "created"

        message = f"Failed to create Website resource: {error}"
        logger.error(f"Website {name}: {message}")
        self._push_failed(record.id, message)
        return "failed"

    def _push_failed(self, record_id, message):
        try:
            self.backend.push_status(
                record_id, WebsitePhase.FAILED.value, error_message=message
            )
        except BackendError as e:
            logger.error(f"Failed to update backend status for website {record_id}: {e}")
