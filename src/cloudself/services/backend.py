""" HTTP client for the CloudSelf backend provisioner API.
"""

import logging

import httpx
from pydantic import ValidationError

from cloudself import config
from cloudself.exception import ProtocolError, StatusError, TransportError
from cloudself.models.website import BackendRecord, PendingWebsitesResponse, WebsitePhase

logger = logging.getLogger(__name__)

PENDING_PATH = "/api/provisioner/websites/pending"
STATUS_PATH = "/api/provisioner/websites/{record_id}/status"


def describe_validation_error(error):
    """ One-line summary of a pydantic ValidationError.
    """
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'row'}: {err['msg']}"
        for err in error.errors()
    )


class BackendClient:
    """ Synchronous client for the backend's provisioner endpoints.

    Each method performs exactly one HTTP request and never retries; callers
    own the retry policy.
    """

    def __init__(self, base_url=None, timeout=None, verify_tls=None, transport=None):
        self.base_url = (base_url or config.get_backend_url()).rstrip("/")
        self.timeout = timeout if timeout is not None else config.get_backend_timeout()
        self.verify_tls = (
            verify_tls if verify_tls is not None else config.get_verify_tls()
        )
        self._transport = transport

    def _get_headers(self):
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _client(self):
        return httpx.Client(
            base_url=self.base_url,
            verify=self.verify_tls,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _send(self, method, path, body=None):
        try:
            with self._client() as client:
                logger.debug(f"{method} {self.base_url}{path}")
                response = client.request(
                    method, path, headers=self._get_headers(), json=body
                )
        except httpx.RequestError as e:
            raise TransportError(f"failed to send request: {e}") from e

        if response.status_code != 200:
            raise StatusError(response.status_code, response.text)
        return response

    def fetch_pending(self, on_invalid=None):
        """ Fetch every website the backend currently marks as pending.

        Each row is decoded on its own; a row that does not decode is logged,
        handed to ``on_invalid(row, message)`` and left out of the result.

        Returns:
            list[BackendRecord]
        """
        response = self._send("GET", PENDING_PATH)

        try:
            payload = PendingWebsitesResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProtocolError(f"failed to decode response: {e}") from e

        if not payload.success:
            raise ProtocolError("backend reported success=false for pending websites")

        records = []
        for row in payload.data:
            try:
                records.append(BackendRecord.model_validate(row))
            except ValidationError as e:
                message = describe_validation_error(e)
                logger.warning(f"Skipping undecodable pending website row: {message}")
                if on_invalid is not None:
                    on_invalid(row, message)
        return records

    def push_status(self, record_id, status, pod_ip_address=None, error_message=None):
        """ Update the status of one backend website record.

        Args:
            record_id: Backend website id
            status: pending, provisioned or failed
            pod_ip_address: Access address, required for provisioned
            error_message: Error text, required for failed
        """
        phase = WebsitePhase(status)
        if phase == WebsitePhase.PROVISIONED and not pod_ip_address:
            raise ValueError("pod_ip_address is required when status is provisioned")
        if phase == WebsitePhase.FAILED and not error_message:
            raise ValueError("error_message is required when status is failed")

        body = {"status": phase.value}
        if pod_ip_address is not None:
            body["podIpAddress"] = pod_ip_address
        if error_message is not None:
            body["errorMessage"] = error_message

        self._send("PUT", STATUS_PATH.format(record_id=record_id), body)
        logger.info(f"Updated backend status for website {record_id}: {phase.value}")
        return True

