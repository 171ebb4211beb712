"""CRD Registry for the models the operator serves."""

import importlib
import logging

logger = logging.getLogger(__name__)


class CRDRegistry:
    """Global registry for CRD models."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._models = {}
        return cls._instance

    @classmethod
    def register(
        cls,
        group,
        version,
        kind,
        plural=None,
        scope="Namespaced",
        short_names=None,
        status_model=None,
        printer_columns=None,
    ):
        """Decorator to register CRD models.

        Args:
            group: API group (e.g., 'websites.cloudself.dev')
            version: API version (e.g., 'v1')
            kind: Kind name (e.g., 'Website')
            plural: Plural name (defaults to kind.lower() + 's')
            scope: 'Namespaced' or 'Cluster'
            short_names: kubectl short names
            status_model: pydantic model describing the status subresource
            printer_columns: additionalPrinterColumns for kubectl get
        """

        def decorator(model_class):
            if not hasattr(model_class, "__annotations__"):
                raise ValueError(
                    f"CRD model {model_class.__name__} must have type annotations"
                )

            model_class._crd_group = group
            model_class._crd_version = version
            model_class._crd_kind = kind
            model_class._crd_plural = plural or f"{kind.lower()}s"
            model_class._crd_scope = scope

            registry_instance = cls()
            key = f"{group}/{version}/{kind}"

            registry_instance._models[key] = {
                "model": model_class,
                "status_model": status_model,
                "group": group,
                "version": version,
                "kind": kind,
                "plural": model_class._crd_plural,
                "scope": scope,
                "singular": kind.lower(),
                "short_names": list(short_names or []),
                "printer_columns": list(printer_columns or []),
            }

            logger.debug(f"Registered CRD: {key}")
            return model_class

        return decorator

    def discover_models(self, package_paths=None):
        """Import model packages so their decorators run.

        Args:
            package_paths: List of package paths to import (e.g., ['cloudself.models'])
        """
        if package_paths is None:
            package_paths = ["cloudself.models"]

        for package_path in package_paths:
            try:
                importlib.import_module(package_path)
            except ImportError as e:
                logger.warning(f"Could not discover models in {package_path}: {e}")

    def get_all_models(self):
        """Get all registered CRD models."""
        return self._models.copy()

    def list_registered_models(self):
        """List all registered model keys."""
        return list(self._models.keys())
