"""Unit tests for the Kubernetes source plugin."""

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from conftest import make_pod
from plugins.base import TransportError
from plugins.sources.kubernetes import KubernetesSource, build_api_client, project_pod


def pod_list(pods, continue_token=None):
    return SimpleNamespace(
        items=pods, metadata=SimpleNamespace(_continue=continue_token)
    )


class TestProjectPod:
    """Tests for project_pod()."""

    def test_only_prefixed_ports(self, sample_pod):
        """Only ports with the SSH prefix are projected."""
        assets = project_pod(sample_pod, "ssh")

        assert len(assets) == 1
        asset = assets[0]
        assert asset.identity == "pod-x__shell__ssh-main"
        assert asset.address == "10.0.0.1"
        assert asset.port == 22
        assert asset.platform == "Linux"
        assert asset.workload == "default/pod-x"
        assert "pod-x" in asset.comment

    def test_every_container_and_port(self):
        """Every container and every matching port is projected."""
        pod = make_pod(
            "pod-m",
            {
                "a": [("ssh", 22), ("ssh-alt", 2222)],
                "b": [("ssh-b", 22)],
                "c": [("metrics", 9090)],
            },
        )
        identities = [a.identity for a in project_pod(pod, "ssh")]
        assert identities == ["pod-m__a__ssh", "pod-m__a__ssh-alt", "pod-m__b__ssh-b"]

    def test_no_ssh_port(self):
        """A pod without SSH ports yields nothing."""
        pod = make_pod("web", {"nginx": [("http", 80)]})
        assert project_pod(pod, "ssh") == []

    def test_containers_without_ports(self):
        """Containers with no ports are ignored."""
        pod = make_pod("bare", {"main": []})
        pod.spec.containers[0].ports = None
        assert project_pod(pod, "ssh") == []

    def test_unnamed_ports_ignored(self):
        """Unnamed ports are ignored."""
        pod = make_pod("p", {"c": [(None, 22)]})
        assert project_pod(pod, "ssh") == []

    def test_pending_pod_without_ip(self):
        """A pod without an IP yields an empty address."""
        pod = make_pod("p", {"c": [("ssh", 22)]}, ip=None, phase="Pending")
        assets = project_pod(pod, "ssh")
        assert len(assets) == 1
        assert assets[0].address == ""

    def test_custom_prefix_and_platform(self):
        """Prefix and platform are configurable."""
        pod = make_pod("p", {"c": [("ssh", 22), ("admin-ssh", 2200)]})
        assets = project_pod(pod, "admin", platform="Unix")
        assert [a.identity for a in assets] == ["p__c__admin-ssh"]
        assert assets[0].platform == "Unix"


@pytest.mark.asyncio
class TestKubernetesSource:
    """Tests for KubernetesSource.list_desired_assets()."""

    @pytest.fixture
    def source(self):
        source = KubernetesSource(MagicMock(), platform="Linux", max_results=100, request_timeout=5)
        source.core_v1 = MagicMock()
        return source

    async def test_lists_namespace(self, source, sample_pod):
        """Test listing a single namespace."""
        source.core_v1.list_namespaced_pod.return_value = pod_list([sample_pod])

        assets = await source.list_desired_assets("apps", "ssh.port/open=true", "ssh")

        source.core_v1.list_namespaced_pod.assert_called_once_with(
            "apps",
            label_selector="ssh.port/open=true",
            limit=100,
            _request_timeout=5,
        )
        assert [a.identity for a in assets] == ["pod-x__shell__ssh-main"]

    async def test_empty_namespace_lists_all(self, source, sample_pod):
        """An empty namespace lists all namespaces."""
        source.core_v1.list_pod_for_all_namespaces.return_value = pod_list([sample_pod])

        await source.list_desired_assets("", "ssh.port/open=true", "ssh")

        source.core_v1.list_pod_for_all_namespaces.assert_called_once()
        source.core_v1.list_namespaced_pod.assert_not_called()

    async def test_excludes_pods_without_ssh_ports(self, source, sample_pod):
        """Pods without SSH ports contribute nothing."""
        web = make_pod("web", {"nginx": [("http", 80)]})
        source.core_v1.list_namespaced_pod.return_value = pod_list([web, sample_pod])

        assets = await source.list_desired_assets("apps", "x=y", "ssh")

        assert len(assets) == 1

    async def test_excludes_terminated_pods(self, source):
        """Succeeded and Failed pods are skipped."""
        done = make_pod("job", {"c": [("ssh", 22)]}, phase="Succeeded")
        failed = make_pod("crash", {"c": [("ssh", 22)]}, phase="Failed")
        running = make_pod("live", {"c": [("ssh", 22)]})
        source.core_v1.list_namespaced_pod.return_value = pod_list([done, failed, running])

        assets = await source.list_desired_assets("apps", "x=y", "ssh")

        assert [a.identity for a in assets] == ["live__c__ssh"]

    async def test_api_error_raises_transport_error(self, source):
        """ApiException becomes TransportError with its status."""
        source.core_v1.list_namespaced_pod.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(TransportError) as exc_info:
            await source.list_desired_assets("apps", "x=y", "ssh")
        assert exc_info.value.status == 403

    async def test_network_error_raises_transport_error(self, source):
        """Network errors become TransportError."""
        source.core_v1.list_namespaced_pod.side_effect = ConnectionRefusedError("refused")

        with pytest.raises(TransportError):
            await source.list_desired_assets("apps", "x=y", "ssh")

    async def test_hung_call_times_out(self, source):
        """A hung list call is bounded by the request timeout."""
        source.request_timeout = 0.01

        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        with patch("plugins.sources.kubernetes.source.asyncio.to_thread", side_effect=hang):
            with pytest.raises(TransportError) as exc_info:
                await asyncio.wait_for(
                    source.list_desired_assets("apps", "x=y", "ssh"), timeout=1
                )
        assert "timed out" in str(exc_info.value)


class TestBuildApiClient:
    """Tests for credential discovery."""

    def test_prefers_in_cluster(self):
        """In-cluster credentials are tried first."""
        with patch("plugins.sources.kubernetes.source.k8s_config") as k8s_config:
            build_api_client("/nonexistent")
        k8s_config.load_incluster_config.assert_called_once()
        k8s_config.load_kube_config.assert_not_called()

    def test_falls_back_to_kubeconfig(self, tmp_path):
        """The kubeconfig is used outside the cluster."""
        kubeconfig = tmp_path / "config"
        kubeconfig.write_text("apiVersion: v1\n")
        with patch("plugins.sources.kubernetes.source.k8s_config") as k8s_config:
            k8s_config.load_incluster_config.side_effect = ConfigException("not in cluster")
            build_api_client(str(kubeconfig))
        k8s_config.load_kube_config.assert_called_once()
        assert k8s_config.load_kube_config.call_args.kwargs["config_file"] == str(kubeconfig)

    def test_no_credentials_raises(self):
        """No usable credentials raises ValueError."""
        with patch("plugins.sources.kubernetes.source.k8s_config") as k8s_config:
            k8s_config.load_incluster_config.side_effect = ConfigException("not in cluster")
            with pytest.raises(ValueError):
                build_api_client("/nonexistent/kubeconfig")
