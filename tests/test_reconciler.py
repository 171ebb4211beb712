import pytest

from cloudself.exception import ProvisioningError, StatusError
from cloudself.services.reconciler import (
    Action,
    WebsiteReconciler,
    access_descriptor,
    assigned_node_port,
    decide,
    failure_outcome,
    is_provisioned,
)
from tests.conftest import api_error, live_pod, live_service, make_website


def make_reconciler(core_api, custom_api, backend, node_address=""):
    return WebsiteReconciler(
        core_api,
        custom_api,
        backend,
        node_address=node_address,
        requeue_delay=5,
        request_timeout=10,
    )


class TestDecide:
    def test_pod_not_running_requeues(self):
        outcome = decide(7, "Pending", 32000)

        assert outcome.action == Action.REQUEUE
        assert outcome.requeue_after == 5
        assert outcome.status_patch is None
        assert outcome.backend_push is None

    def test_unknown_phase_requeues(self):
        assert decide(7, None, None).action == Action.REQUEUE

    def test_running_without_node_port_requeues(self):
        outcome = decide(7, "Running", None, requeue_delay=2)

        assert outcome.action == Action.REQUEUE
        assert outcome.requeue_after == 2
        assert "NodePort" in outcome.reason

    def test_running_with_node_port_provisions(self):
        outcome = decide(7, "Running", 32000, timestamp="2024-01-01T00:00:00+00:00")

        assert outcome.action == Action.PROVISION
        assert outcome.status_patch == {
            "status": "provisioned",
            "podIpAddress": ":32000",
            "errorMessage": None,
            "lastReconcileTime": "2024-01-01T00:00:00+00:00",
        }
        assert outcome.backend_push.record_id == 7
        assert outcome.backend_push.status == "provisioned"
        assert outcome.backend_push.pod_ip_address == ":32000"

    def test_node_address_prefixes_descriptor(self):
        outcome = decide(7, "Running", 32000, node_address="192.168.49.2")

        assert outcome.status_patch["podIpAddress"] == "192.168.49.2:32000"

    def test_failure_outcome(self):
        outcome = failure_outcome(7, "Failed to create Pod: quota exceeded")

        assert outcome.action == Action.FAIL
        assert outcome.status_patch["status"] == "failed"
        assert outcome.status_patch["errorMessage"] == "Failed to create Pod: quota exceeded"
        assert outcome.backend_push.error_message == "Failed to create Pod: quota exceeded"


class TestHelpers:
    def test_is_provisioned(self):
        assert is_provisioned({"status": "provisioned", "podIpAddress": ":32000"})
        assert not is_provisioned({"status": "provisioned"})
        assert not is_provisioned({"status": "failed", "errorMessage": "x"})
        assert not is_provisioned(None)

    def test_assigned_node_port_skips_unassigned(self):
        assert assigned_node_port(live_service(None)) is None
        assert assigned_node_port(live_service(31000)) == 31000
        assert assigned_node_port(None) is None

    def test_access_descriptor(self):
        assert access_descriptor(32000) == ":32000"


class TestReconcile:
    def test_missing_website_is_nothing_to_do(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.side_effect = api_error(404)

        outcome = make_reconciler(core_api, custom_api, backend).reconcile("demo", "default")

        assert outcome.action == Action.SKIP
        core_api.create_namespaced_pod.assert_not_called()
        backend.push_status.assert_not_called()

    def test_provisioned_website_is_a_noop(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website(
            status={"status": "provisioned", "podIpAddress": ":32000"}
        )
        reconciler = make_reconciler(core_api, custom_api, backend)

        for _ in range(3):
            assert reconciler.reconcile("demo", "default").action == Action.SKIP

        core_api.create_namespaced_config_map.assert_not_called()
        backend.push_status.assert_not_called()
        custom_api.patch_namespaced_custom_object_status.assert_not_called()

    def test_creates_children_owned_by_website(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website()

        make_reconciler(core_api, custom_api, backend).reconcile("demo", "default")

        for create in (
            core_api.create_namespaced_config_map,
            core_api.create_namespaced_pod,
            core_api.create_namespaced_service,
        ):
            body = create.call_args.kwargs["body"]
            assert body.metadata.name == "demo"
            assert body.metadata.owner_references[0].uid == "uid-demo"

    def test_pod_not_running_requeues_without_side_effects(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website()
        core_api.create_namespaced_service.return_value = live_service(32000)

        outcome = make_reconciler(core_api, custom_api, backend).reconcile("demo", "default")

        assert outcome.action == Action.REQUEUE
        assert outcome.requeue_after == 5
        custom_api.patch_namespaced_custom_object_status.assert_not_called()
        backend.push_status.assert_not_called()

    def test_existing_children_are_read_back(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website()
        core_api.create_namespaced_config_map.side_effect = api_error(409)
        core_api.create_namespaced_pod.side_effect = api_error(409)
        core_api.create_namespaced_service.side_effect = api_error(409)
        core_api.read_namespaced_pod.return_value = live_pod("Running")
        core_api.read_namespaced_service.return_value = live_service(32000)

        outcome = make_reconciler(core_api, custom_api, backend).reconcile("demo", "default")

        assert outcome.action == Action.PROVISION
        core_api.read_namespaced_pod.assert_called_once_with(
            name="demo", namespace="default", _request_timeout=10
        )
        core_api.read_namespaced_service.assert_called_once_with(
            name="demo", namespace="default", _request_timeout=10
        )

    def test_ready_website_is_provisioned_locally_then_remotely(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website()
        core_api.create_namespaced_pod.return_value = live_pod("Running")
        core_api.create_namespaced_service.return_value = live_service(32000)

        calls = []
        custom_api.patch_namespaced_custom_object_status.side_effect = (
            lambda **kwargs: calls.append(("status", kwargs["body"]))
        )
        backend.push_status.side_effect = lambda *args, **kwargs: calls.append(("backend", args, kwargs))

        outcome = make_reconciler(core_api, custom_api, backend).reconcile("demo", "default")

        assert outcome.action == Action.PROVISION
        assert [c[0] for c in calls] == ["status", "backend"]
        status = calls[0][1]["status"]
        assert status["status"] == "provisioned"
        assert status["podIpAddress"] == ":32000"
        assert status["lastReconcileTime"]
        assert calls[1][1] == (7, "provisioned")
        assert calls[1][2]["pod_ip_address"] == ":32000"

    def test_status_write_failure_skips_backend(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website()
        core_api.create_namespaced_pod.return_value = live_pod("Running")
        core_api.create_namespaced_service.return_value = live_service(32000)
        custom_api.patch_namespaced_custom_object_status.side_effect = api_error(500)

        with pytest.raises(Exception):
            make_reconciler(core_api, custom_api, backend).reconcile("demo", "default")

        backend.push_status.assert_not_called()

    def test_backend_failure_after_status_write_is_logged(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website()
        core_api.create_namespaced_pod.return_value = live_pod("Running")
        core_api.create_namespaced_service.return_value = live_service(32000)
        backend.push_status.side_effect = StatusError(500, "db down")

        outcome = make_reconciler(core_api, custom_api, backend).reconcile("demo", "default")

        assert outcome.action == Action.PROVISION
        custom_api.patch_namespaced_custom_object_status.assert_called_once()

    def test_creation_failure_is_reported_and_raised(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website()
        core_api.create_namespaced_pod.side_effect = api_error(
            403, 'pods "demo" is forbidden: exceeded quota'
        )

        with pytest.raises(ProvisioningError) as exc_info:
            make_reconciler(core_api, custom_api, backend).reconcile("demo", "default")

        message = 'Failed to create Pod: pods "demo" is forbidden: exceeded quota'
        assert exc_info.value.message == message
        backend.push_status.assert_called_once_with(
            7, "failed", pod_ip_address=None, error_message=message
        )
        status = custom_api.patch_namespaced_custom_object_status.call_args.kwargs["body"]["status"]
        assert status["status"] == "failed"
        assert status["errorMessage"] == message
        core_api.create_namespaced_service.assert_not_called()

    def test_config_map_failure_stops_pass(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website()
        core_api.create_namespaced_config_map.side_effect = api_error(500)

        with pytest.raises(ProvisioningError):
            make_reconciler(core_api, custom_api, backend).reconcile("demo", "default")

        core_api.create_namespaced_pod.assert_not_called()

    def test_repeated_passes_converge(self, core_api, custom_api, backend):
        website = make_website()
        custom_api.get_namespaced_custom_object.return_value = website
        core_api.create_namespaced_pod.return_value = live_pod("Running")
        core_api.create_namespaced_service.return_value = live_service(32000)
        reconciler = make_reconciler(core_api, custom_api, backend)

        def write_status(**kwargs):
            website["status"] = kwargs["body"]["status"]

        custom_api.patch_namespaced_custom_object_status.side_effect = write_status

        first = reconciler.reconcile("demo", "default")
        core_api.create_namespaced_config_map.side_effect = api_error(409)
        core_api.create_namespaced_pod.side_effect = api_error(409)
        core_api.create_namespaced_service.side_effect = api_error(409)
        second = reconciler.reconcile("demo", "default")

        assert first.action == Action.PROVISION
        assert second.action == Action.SKIP
        assert website["status"]["status"] == "provisioned"
        assert backend.push_status.call_count == 1

    def test_idempotent_while_pod_starts(self, core_api, custom_api, backend):
        custom_api.get_namespaced_custom_object.return_value = make_website()
        core_api.create_namespaced_config_map.side_effect = api_error(409)
        core_api.create_namespaced_pod.side_effect = api_error(409)
        core_api.create_namespaced_service.side_effect = api_error(409)
        core_api.read_namespaced_pod.return_value = live_pod("ContainerCreating")
        core_api.read_namespaced_service.return_value = live_service(32000)
        reconciler = make_reconciler(core_api, custom_api, backend)

        outcomes = [reconciler.reconcile("demo", "default") for _ in range(4)]

        assert {o.action for o in outcomes} == {Action.REQUEUE}
        backend.push_status.assert_not_called()
