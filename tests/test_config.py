"""Tests for settings and cluster connection setup."""

from unittest.mock import patch

import pytest

from business_labeler import ClusterConfig, ClusterConnection, ResourceKind, Settings


class TestSettings:
    """Test cases for Settings."""

    def test_defaults(self):
        """Test default settings."""
        settings = Settings(_env_file=None)

        assert settings.label_key == "business"
        assert settings.max_workers == 8
        assert settings.controller_kinds == [ResourceKind.DEPLOYMENT, ResourceKind.STATEFULSET]
        assert settings.dry_run is False
        assert settings.treat_unset_as_fallback is False

    def test_environment_overrides(self, monkeypatch):
        """Test BUSINESS_LABELER_* environment variables."""
        monkeypatch.setenv("BUSINESS_LABELER_MAX_WORKERS", "3")
        monkeypatch.setenv("BUSINESS_LABELER_CONTROLLER_KINDS", '["StatefulSet"]')
        monkeypatch.setenv("BUSINESS_LABELER_KUBE_CONTEXT", "staging")

        settings = Settings(_env_file=None)

        assert settings.max_workers == 3
        assert settings.controller_kinds == [ResourceKind.STATEFULSET]
        assert settings.cluster_config() == ClusterConfig(context="staging")

    def test_invalid_worker_count(self):
        """Test worker count must be positive."""
        with pytest.raises(ValueError):
            Settings(_env_file=None, max_workers=0)


class TestClusterConnection:
    """Test cases for ClusterConnection."""

    @patch("business_labeler.cluster.config")
    def test_kubeconfig(self, mock_config):
        """Test kubeconfig loading with path and context."""
        conn = ClusterConnection(ClusterConfig(kubeconfig_path="/tmp/kubeconfig", context="dev"))

        mock_config.load_kube_config.assert_called_once_with(
            config_file="/tmp/kubeconfig", context="dev"
        )
        assert conn.core_v1 is not None
        assert conn.apps_v1 is not None
        conn.close()

    @patch("business_labeler.cluster.config")
    def test_in_cluster(self, mock_config):
        """Test in-cluster configuration."""
        with ClusterConnection(ClusterConfig(in_cluster=True)) as conn:
            mock_config.load_incluster_config.assert_called_once()
            mock_config.load_kube_config.assert_not_called()
            assert conn.apps_v1 is not None

    @patch("business_labeler.cluster.config")
    def test_load_failure(self, mock_config):
        """Test configuration failures surface as ValueError."""
        mock_config.load_kube_config.side_effect = Exception("no such file")

        with pytest.raises(ValueError, match="Failed to initialize cluster connection"):
            ClusterConnection(ClusterConfig())

    @patch("business_labeler.cluster.config")
    def test_closed_connection(self, mock_config):
        """Test API access after close raises."""
        conn = ClusterConnection(ClusterConfig())
        conn.close()

        with pytest.raises(RuntimeError):
            _ = conn.core_v1
