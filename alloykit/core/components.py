"""Static catalog of the observability components AlloyKit manages.

Versions, default ports, readiness endpoints, container images and release
download locations live here so every workflow derives them from one place.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .enums import Component


@dataclass(frozen=True)
class ComponentSpec:
    """Everything the engine needs to know about one component."""

    component: Component
    display_name: str
    version: str
    default_port: int
    container_port: int
    readiness_path: str
    image: str
    url_template: str
    archive_template: str
    data_mount: str
    config_name: str
    container_config_path: str
    container_args: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def bare_version(self) -> str:
        return self.version.lstrip("v")

    def download_url(self, os_name: str, arch: str) -> str:
        return self.url_template.format(
            version=self.version, bare_version=self.bare_version, os=os_name, arch=arch
        )

    def archive_name(self, os_name: str, arch: str) -> str:
        return self.archive_template.format(
            version=self.version, bare_version=self.bare_version, os=os_name, arch=arch
        )


ALLOY_VERSION = "v1.9.2"
PROMETHEUS_VERSION = "v3.4.2"
LOKI_VERSION = "3.5.1"
GRAFANA_VERSION = "12.0.2"

COMPONENT_SPECS: Dict[Component, ComponentSpec] = {
    Component.PROMETHEUS: ComponentSpec(
        component=Component.PROMETHEUS,
        display_name="Prometheus",
        version=PROMETHEUS_VERSION,
        default_port=9090,
        container_port=9090,
        readiness_path="/-/ready",
        image=f"docker.io/prom/prometheus:{PROMETHEUS_VERSION}",
        url_template=(
            "https://github.com/prometheus/prometheus/releases/download/"
            "{version}/prometheus-{bare_version}.{os}-{arch}.tar.gz"
        ),
        archive_template="prometheus-{bare_version}.{os}-{arch}.tar.gz",
        data_mount="/prometheus",
        config_name="prometheus.yml",
        container_config_path="/etc/prometheus/prometheus.yml",
        container_args=(
            "--config.file=/etc/prometheus/prometheus.yml",
            "--storage.tsdb.path=/prometheus",
            "--web.enable-lifecycle",
            "--web.enable-remote-write-receiver",
        ),
    ),
    Component.LOKI: ComponentSpec(
        component=Component.LOKI,
        display_name="Loki",
        version=LOKI_VERSION,
        default_port=3100,
        container_port=3100,
        readiness_path="/ready",
        image=f"docker.io/grafana/loki:{LOKI_VERSION}",
        url_template=(
            "https://github.com/grafana/loki/releases/download/"
            "v{bare_version}/loki-{os}-{arch}.zip"
        ),
        archive_template="loki-{bare_version}-{os}-{arch}.zip",
        data_mount="/loki",
        config_name="loki.yml",
        container_config_path="/etc/loki/local-config.yaml",
        container_args=("-config.file=/etc/loki/local-config.yaml",),
    ),
    Component.GRAFANA: ComponentSpec(
        component=Component.GRAFANA,
        display_name="Grafana",
        version=GRAFANA_VERSION,
        default_port=3000,
        container_port=3000,
        readiness_path="/api/health",
        image=f"docker.io/grafana/grafana:{GRAFANA_VERSION}",
        url_template=(
            "https://dl.grafana.com/oss/release/"
            "grafana-{bare_version}.{os}-{arch}.tar.gz"
        ),
        archive_template="grafana-{bare_version}.{os}-{arch}.tar.gz",
        data_mount="/var/lib/grafana",
        config_name="grafana.ini",
        container_config_path="/etc/grafana/grafana.ini",
    ),
    Component.ALLOY: ComponentSpec(
        component=Component.ALLOY,
        display_name="Grafana Alloy",
        version=ALLOY_VERSION,
        default_port=12345,
        container_port=12345,
        readiness_path="/-/ready",
        image=f"docker.io/grafana/alloy:{ALLOY_VERSION}",
        url_template=(
            "https://github.com/grafana/alloy/releases/download/"
            "{version}/alloy-{os}-{arch}.zip"
        ),
        archive_template="alloy-{bare_version}-{os}-{arch}.zip",
        data_mount="/var/lib/alloy/data",
        config_name="alloy.alloy",
        container_config_path="/etc/alloy/config.alloy",
        container_args=(
            "run",
            "--server.http.listen-addr=0.0.0.0:12345",
            "--storage.path=/var/lib/alloy/data",
            "/etc/alloy/config.alloy",
        ),
    ),
}

# Install and start order. The collector goes last so its sinks are up.
INSTALL_ORDER: List[Component] = [
    Component.PROMETHEUS,
    Component.LOKI,
    Component.GRAFANA,
    Component.ALLOY,
]

_ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armv7",
}


def get_spec(component: Component) -> ComponentSpec:
    return COMPONENT_SPECS[component]


def component_from_name(name: str) -> Component:
    """Resolve a short component name (case-insensitive)."""
    try:
        return Component(name.strip().lower())
    except ValueError as e:
        valid = ", ".join(c.value for c in Component)
        raise ValueError(f"Unknown component '{name}'. Valid: {valid}") from e


def normalize_arch(machine: str) -> str:
    """Map a platform machine string to release artifact arch naming."""
    arch = _ARCH_MAP.get(machine.lower())
    if arch is None:
        raise ValueError(f"Unsupported architecture: {machine}")
    return arch
