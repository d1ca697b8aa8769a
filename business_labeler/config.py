"""Configuration management for the business label reconciler."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import CONTROLLER_KINDS, ClusterConfig, ResourceKind


class Settings(BaseSettings):
    """Reconciler settings, read from BUSINESS_LABELER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BUSINESS_LABELER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"

    # Kubernetes Settings
    kubeconfig_path: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (default: ~/.kube/config)",
    )
    kube_context: Optional[str] = None
    in_cluster: bool = False
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    # Classification Settings
    label_key: str = "business"
    category_table_path: str = "categories.yaml"
    treat_unset_as_fallback: bool = Field(
        default=False,
        description="Treat a missing label as already carrying the fallback category",
    )
    controller_kinds: list[ResourceKind] = Field(
        default_factory=lambda: list(CONTROLLER_KINDS)
    )

    # Reconciliation Settings
    max_workers: int = Field(default=8, ge=1)
    retry_attempts: int = Field(default=3, ge=1)
    retry_backoff_min_seconds: float = Field(default=1.0, ge=0)
    retry_backoff_max_seconds: float = Field(default=10.0, ge=0)
    conflict_retries: int = Field(default=3, ge=0)
    run_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    dry_run: bool = False

    def cluster_config(self) -> ClusterConfig:
        """Build the cluster connection configuration."""
        return ClusterConfig(
            kubeconfig_path=self.kubeconfig_path,
            context=self.kube_context,
            in_cluster=self.in_cluster,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
