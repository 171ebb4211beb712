"""GitOps CRD management and generation system."""

import logging
from pathlib import Path

import kubernetes
from kubernetes.client.exceptions import ApiException
import yaml

from .registry import CRDRegistry

logger = logging.getLogger(__name__)

# Validation keywords carried over from pydantic schemas into the CRD schema
_PASSTHROUGH_KEYS = (
    "description",
    "default",
    "enum",
    "pattern",
    "minLength",
    "maxLength",
    "minimum",
    "maximum",
    "format",
)


class OpenAPIConverter:
    """Convert pydantic schemas to OpenAPI v3 compatible schemas for CRDs."""

    @staticmethod
    def convert_schema(pydantic_schema):
        """Convert pydantic JSON schema to OpenAPI v3 schema for Kubernetes CRDs."""
        openapi_schema = {"type": "object", "properties": {}}

        if "properties" in pydantic_schema:
            openapi_schema["properties"] = OpenAPIConverter._convert_properties(
                pydantic_schema["properties"], pydantic_schema.get("$defs", {})
            )

        if "required" in pydantic_schema:
            openapi_schema["required"] = pydantic_schema["required"]

        return openapi_schema

    @staticmethod
    def _convert_properties(properties, property_defs):
        """Convert properties recursively."""
        converted = {}

        for prop_name, prop_schema in properties.items():
            converted[prop_name] = OpenAPIConverter._convert_property(
                prop_schema, property_defs
            )

        return converted

    @staticmethod
    def _convert_property(prop_schema, defs):
        """Convert a single property schema."""
        # Handle $ref (references to definitions)
        if "$ref" in prop_schema:
            ref_path = prop_schema["$ref"]
            if ref_path.startswith("#/$defs/"):
                def_name = ref_path.replace("#/$defs/", "")
                if def_name in defs:
                    return OpenAPIConverter._convert_property(defs[def_name], defs)

        # Optional[X] is rendered as anyOf [X, null]
        if "anyOf" in prop_schema:
            branches = [b for b in prop_schema["anyOf"] if b.get("type") != "null"]
            if len(branches) == 1:
                converted = OpenAPIConverter._convert_property(branches[0], defs)
                if "description" in prop_schema:
                    converted["description"] = prop_schema["description"]
                converted["nullable"] = True
                return converted

        if prop_schema.get("type") == "array":
            converted = {"type": "array"}
            if "items" in prop_schema:
                converted["items"] = OpenAPIConverter._convert_property(
                    prop_schema["items"], defs
                )
            return converted

        if prop_schema.get("type") == "object":
            converted = {"type": "object"}
            if "properties" in prop_schema:
                converted["properties"] = OpenAPIConverter._convert_properties(
                    prop_schema["properties"], defs
                )
            if "required" in prop_schema:
                converted["required"] = prop_schema["required"]
            converted["additionalProperties"] = True
            return converted

        result = {}
        if "type" in prop_schema:
            result["type"] = prop_schema["type"]
        for key in _PASSTHROUGH_KEYS:
            if key in prop_schema and prop_schema[key] is not None:
                result[key] = prop_schema[key]

        # If no type specified, assume object
        if not result.get("type"):
            result["type"] = "object"
            result["x-kubernetes-preserve-unknown-fields"] = True

        return result


class WebsiteCRDManager:
    """Builds the CRDs for the registered models, writes them for GitOps and applies them."""

    # Parts of a CRD that must match between the file on disk and the models
    CHECKED_FIELDS = (
        ("group", ("spec", "group")),
        ("scope", ("spec", "scope")),
        ("names", ("spec", "names")),
        ("schema", ("spec", "versions", 0, "schema")),
        ("subresources", ("spec", "versions", 0, "subresources")),
        ("printer columns", ("spec", "versions", 0, "additionalPrinterColumns")),
    )

    def __init__(self, output_dir=None):
        self.output_dir = Path(output_dir or "crds/generated")
        self.registry = CRDRegistry()
        self.converter = OpenAPIConverter()

    def generate_crd_definition(self, model_info):
        """Generate a single CRD definition from model info."""
        model_class = model_info["model"]
        group = model_info["group"]
        plural = model_info["plural"]

        try:
            spec_schema = self.converter.convert_schema(model_class.model_json_schema())
        except Exception as e:
            raise ValueError(
                f"Failed to generate schema for {model_class.__name__}: {e}"
            )

        status_model = model_info.get("status_model")
        if status_model is not None:
            status_schema = self.converter.convert_schema(
                status_model.model_json_schema()
            )
        else:
            status_schema = {"type": "object"}
        status_schema["x-kubernetes-preserve-unknown-fields"] = True

        version = {
            "name": model_info["version"],
            "served": True,
            "storage": True,
            "schema": {
                "openAPIV3Schema": {
                    "type": "object",
                    "properties": {"spec": spec_schema, "status": status_schema},
                    "required": ["spec"],
                }
            },
            "subresources": {"status": {}},
        }
        if model_info.get("printer_columns"):
            version["additionalPrinterColumns"] = model_info["printer_columns"]

        return {
            "apiVersion": "apiextensions.k8s.io/v1",
            "kind": "CustomResourceDefinition",
            "metadata": {"name": f"{plural}.{group}"},
            "spec": {
                "group": group,
                "versions": [version],
                "scope": model_info["scope"],
                "names": {
                    "plural": plural,
                    "singular": model_info["singular"],
                    "kind": model_info["kind"],
                    "shortNames": model_info.get("short_names")
                    or [model_info["singular"][:3]],
                },
            },
        }


    def get_crds_as_dict(self):
        """Build every registered CRD, keyed by CRD name."""
        self.registry.discover_models()
        definitions = (
            self.generate_crd_definition(model_info)
            for model_info in self.registry.get_all_models().values()
        )
        return {crd["metadata"]["name"]: crd for crd in definitions}

    def crd_path(self, crd_name):
        return self.output_dir / f"{crd_name}.yaml"

    def write_crds(self):
        """Write one YAML file per CRD into the output directory.

        Returns:
            list[Path]: files written
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)

        written = []
        for crd_name, crd_def in self.get_crds_as_dict().items():
            path = self.crd_path(crd_name)
            path.write_text(yaml.safe_dump(crd_def, default_flow_style=False, sort_keys=False))
            logger.info(f"Wrote CRD {crd_name} to {path}")
            written.append(path)
        return written

    def check_crds(self):
        """Compare the CRD files on disk with what the models produce now.

        Returns:
            list[str]: one entry per missing, unreadable or stale CRD file
        """
        problems = []
        for crd_name, expected in self.get_crds_as_dict().items():
            path = self.crd_path(crd_name)
            if not path.exists():
                problems.append(f"{crd_name}: missing {path}")
                continue

            try:
                actual = yaml.safe_load(path.read_text())
            except yaml.YAMLError as e:
                problems.append(f"{crd_name}: unreadable {path}: {e}")
                continue

            stale = [
                label
                for label, field_path in self.CHECKED_FIELDS
                if _lookup(actual, field_path) != _lookup(expected, field_path)
            ]
            if stale:
                problems.append(f"{crd_name}: stale {', '.join(stale)} in {path}")

        for problem in problems:
            logger.warning(problem)
        return problems

    def apply_crds_to_cluster(self, api_client=None):
        """Create or replace every CRD on the cluster.

        Args:
            api_client: ApiextensionsV1Api instance (built from the loaded config if omitted)

        Returns:
            int: number of CRDs applied
        """
        api_client = api_client or kubernetes.client.ApiextensionsV1Api()

        applied_count = 0
        for crd_name, crd_def in self.get_crds_as_dict().items():
            try:
                existing = api_client.read_custom_resource_definition(crd_name)
                crd_def["metadata"]["resourceVersion"] = (
                    existing.metadata.resource_version
                )
                api_client.replace_custom_resource_definition(
                    name=crd_name, body=crd_def
                )
                logger.info(f"Updated CRD: {crd_name}")
            except ApiException as e:
                if e.status != 404:
                    raise
                api_client.create_custom_resource_definition(body=crd_def)
                logger.info(f"Created CRD: {crd_name}")
            applied_count += 1

        return applied_count


def _lookup(document, field_path):
    """Follow a path of keys and list indexes, None where it breaks off."""
    for part in field_path:
        try:
            document = document[part]
        except (KeyError, IndexError, TypeError):
            return None
    return document
