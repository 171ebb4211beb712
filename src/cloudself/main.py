import asyncio
import logging
import os

import kopf
import kubernetes

from cloudself import config
from cloudself.crd.generator import WebsiteCRDManager
from cloudself.services.backend import BackendClient
from cloudself.services.kube import load_kube_config
from cloudself.services.poller import IngestionPoller
from cloudself.services.reconciler import WebsiteReconciler

# Register kopf handlers
from cloudself import handlers  # noqa: F401

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def run_poller(poller, period):
    """Drive the ingestion poller until cancelled."""
    while True:
        try:
            await asyncio.to_thread(poller.tick)
        except Exception as e:
            logger.error(f"Ingestion poll failed: {e}")
        await asyncio.sleep(period)


@kopf.on.startup()
async def startup_fn(settings: kopf.OperatorSettings, memo: kopf.Memo, **kwargs):
    """Configure the operator and start backend ingestion."""
    logger.info("CloudSelf provisioner is starting up...")

    load_kube_config()

    if config.should_manage_crds():
        try:
            crd_manager = WebsiteCRDManager()
            if config.should_generate_crd_files():
                logger.info("Generating CRD files and applying to cluster")
                crd_manager.write_crds()
            applied = crd_manager.apply_crds_to_cluster()
            logger.info(f"Applied {applied} CRDs to cluster")
        except Exception as e:
            logger.error(f"Failed to apply CRDs to cluster: {e}")

    backend = BackendClient()
    custom_api = kubernetes.client.CustomObjectsApi()
    memo.reconciler = WebsiteReconciler(
        kubernetes.client.CoreV1Api(), custom_api, backend
    )
    memo.poller = IngestionPoller(backend, custom_api)
    memo.poller_task = asyncio.create_task(
        run_poller(memo.poller, memo.poller.interval)
    )

    settings.batching.worker_limit = int(os.getenv("WORKER_LIMIT", "5"))
    settings.posting.enabled = os.getenv("POSTING_ENABLED", "true").lower() == "true"
    settings.watching.server_timeout = int(os.getenv("SERVER_TIMEOUT", "60"))

    logger.info(f"Backend: {backend.base_url}")
    logger.info(f"Website namespace: {memo.poller.namespace}")
    logger.info(f"Poll interval: {memo.poller.interval}s")
    logger.info(f"Worker limit: {settings.batching.worker_limit}")
    logger.info("CloudSelf provisioner startup complete")


@kopf.on.cleanup()
async def cleanup_fn(memo: kopf.Memo, **kwargs):
    """Stop backend ingestion."""
    logger.info("CloudSelf provisioner is shutting down...")

    task = getattr(memo, "poller_task", None)
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    logger.info("CloudSelf provisioner shutdown complete")


def main():
    namespace = config.get_website_namespace()
    try:
        kopf.run(namespaces=[namespace], standalone=True)
    except KeyboardInterrupt:
        logger.info("Operator stopped by user")
    except Exception as e:
        logger.error(f"Operator failed: {e}")
        raise


if __name__ == "__main__":
    main()
