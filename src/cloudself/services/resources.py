""" Builders for the Kubernetes objects that serve one website.

Every builder is a pure function of the website name (and HTML body for the
ConfigMap); nothing here talks to the cluster.
"""

import kubernetes

from cloudself.config import DEFAULT_NAMESPACE, DEFAULT_NGINX_IMAGE, MANAGER_NAME

HTML_VOLUME_NAME = "html-content"
HTML_MOUNT_PATH = "/usr/share/nginx/html"
HTTP_PORT = 80

RESOURCE_REQUESTS = {"cpu": "100m", "memory": "64Mi"}
RESOURCE_LIMITS = {"cpu": "200m", "memory": "128Mi"}


def get_labels(website_name):
    """ Standard label set shared by every child of a Website.
    """
    return {
        "app": "nginx",
        "cloudself.dev/website": website_name,
        "cloudself.dev/managed-by": MANAGER_NAME,
    }


def get_selector(website_name):
    return {
        "app": "nginx",
        "cloudself.dev/website": website_name,
    }


def _metadata(website_name, namespace):
    return kubernetes.client.V1ObjectMeta(
        name=website_name,
        namespace=namespace,
        labels=get_labels(website_name),
    )


def build_config_map(website_name, html_content, namespace=DEFAULT_NAMESPACE):
    """ ConfigMap holding the site's index.html.

    Args:
        website_name: Website name, reused as the ConfigMap name
        html_content: HTML body served at /
        namespace: Kubernetes namespace
    """
    return kubernetes.client.V1ConfigMap(
        metadata=_metadata(website_name, namespace),
        data={"index.html": html_content},
    )


def build_pod(website_name, namespace=DEFAULT_NAMESPACE, image=DEFAULT_NGINX_IMAGE):
    """ nginx Pod serving the ConfigMap read-only from its document root.

    Args:
        website_name: Website name, reused as the Pod and ConfigMap name
        namespace: Kubernetes namespace
        image: nginx image to run
    """
    container = kubernetes.client.V1Container(
        name="nginx",
        image=image,
        ports=[
            kubernetes.client.V1ContainerPort(
                name="http", container_port=HTTP_PORT, protocol="TCP"
            )
        ],
        volume_mounts=[
            kubernetes.client.V1VolumeMount(
                name=HTML_VOLUME_NAME, mount_path=HTML_MOUNT_PATH, read_only=True
            )
        ],
        resources=kubernetes.client.V1ResourceRequirements(
            requests=dict(RESOURCE_REQUESTS),
            limits=dict(RESOURCE_LIMITS),
        ),
    )

    return kubernetes.client.V1Pod(
        metadata=_metadata(website_name, namespace),
        spec=kubernetes.client.V1PodSpec(
            containers=[container],
            volumes=[
                kubernetes.client.V1Volume(
                    name=HTML_VOLUME_NAME,
                    config_map=kubernetes.client.V1ConfigMapVolumeSource(
                        name=website_name
                    ),
                )
            ],
            restart_policy="Always",
        ),
    )


def build_service(website_name, namespace=DEFAULT_NAMESPACE):
    """ NodePort Service exposing the Pod on port 80.

    The node port itself is left for Kubernetes to assign.
    """
    return kubernetes.client.V1Service(
        metadata=_metadata(website_name, namespace),
        spec=kubernetes.client.V1ServiceSpec(
            type="NodePort",
            selector=get_selector(website_name),
            ports=[
                kubernetes.client.V1ServicePort(
                    name="http", protocol="TCP", port=HTTP_PORT
                )
            ],
        ),
    )


def owner_reference(website_body):
    """ Controller owner reference pointing at a Website, for garbage collection.

    Args:
        website_body: Website object as returned by the CustomObjectsApi
    """
    metadata = website_body["metadata"]
    return kubernetes.client.V1OwnerReference(
        api_version=website_body.get("apiVersion", "websites.cloudself.dev/v1"),
        kind=website_body.get("kind", "Website"),
        name=metadata["name"],
        uid=metadata["uid"],
        controller=True,
        block_owner_deletion=True,
    )
