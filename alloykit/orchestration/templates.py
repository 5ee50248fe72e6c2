"""Default component configuration files written at install time."""

from pathlib import Path
from typing import Dict

from ..core.components import get_spec
from ..core.enums import Component, SubstrateKind
from ..core.naming import unit_name
from ..core.types import AlloyKitConfig
from ..utils.filesystem import InstallLayout, atomic_write


def _endpoint(config: AlloyKitConfig, component: Component) -> str:
    """host:port at which other units reach component."""
    if config.substrate == SubstrateKind.CONTAINER:
        return f"{unit_name(component, config.instance_name)}:{get_spec(component).container_port}"
    return f"localhost:{config.ports.for_component(component)}"


def prometheus_config(config: AlloyKitConfig) -> str:
    self_target = (
        "localhost:9090"
        if config.substrate == SubstrateKind.CONTAINER
        else f"localhost:{config.ports.prometheus}"
    )
    return f"""global:
  scrape_interval: 15s
  evaluation_interval: 15s

scrape_configs:
  - job_name: 'prometheus'
    static_configs:
      - targets: ['{self_target}']

  - job_name: 'alloy'
    static_configs:
      - targets: ['{_endpoint(config, Component.ALLOY)}']
"""


def loki_config(config: AlloyKitConfig, data_dir: str) -> str:
    http_port = 3100 if config.substrate == SubstrateKind.CONTAINER else config.ports.loki
    return f"""auth_enabled: false

server:
  http_listen_port: {http_port}
  grpc_listen_port: 0

common:
  path_prefix: {data_dir}
  storage:
    filesystem:
      chunks_directory: {data_dir}/chunks
      rules_directory: {data_dir}/rules
  replication_factor: 1
  ring:
    instance_addr: 127.0.0.1
    kvstore:
      store: inmemory

schema_config:
  configs:
    - from: 2020-10-24
      store: tsdb
      object_store: filesystem
      schema: v13
      index:
        prefix: index_
        period: 24h

limits_config:
  reject_old_samples: true
  reject_old_samples_max_age: 168h

compactor:
  working_directory: {data_dir}/compactor

ingester:
  wal:
    enabled: true
    dir: {data_dir}/wal
"""


def alloy_config(config: AlloyKitConfig) -> str:
    loki = _endpoint(config, Component.LOKI)
    prometheus = _endpoint(config, Component.PROMETHEUS)
    return f"""/* AlloyKit collector configuration for instance {config.instance_name} */

// SECTION: TARGETS

loki.write "default" {{
  endpoint {{
    url = "http://{loki}/loki/api/v1/push"
  }}
  external_labels = {{}}
}}

prometheus.remote_write "default" {{
  endpoint {{
    url = "http://{prometheus}/api/v1/write"
  }}
}}

// SECTION: SYSTEM LOGS

local.file_match "system" {{
  path_targets = [{{
    __address__ = "localhost",
    __path__    = "/var/log/{{syslog,messages,*.log}}",
    instance    = constants.hostname,
    job         = string.format("%s-logs", constants.hostname),
  }}]
}}

loki.source.file "system" {{
  targets    = local.file_match.system.targets
  forward_to = [loki.write.default.receiver]
}}

// SECTION: SYSTEM METRICS

prometheus.exporter.unix "metrics" {{
  disable_collectors = ["ipvs", "btrfs", "infiniband", "xfs", "zfs"]
}}

discovery.relabel "metrics" {{
  targets = prometheus.exporter.unix.metrics.targets
  rule {{
    target_label = "instance"
    replacement  = constants.hostname
  }}
  rule {{
    target_label = "job"
    replacement  = string.format("%s-metrics", constants.hostname)
  }}
}}

prometheus.scrape "metrics" {{
  scrape_interval = "15s"
  targets         = discovery.relabel.metrics.output
  forward_to      = [prometheus.remote_write.default.receiver]
}}
"""


def grafana_datasources(config: AlloyKitConfig) -> str:
    return f"""apiVersion: 1

datasources:
  - name: Prometheus
    type: prometheus
    access: proxy
    url: http://{_endpoint(config, Component.PROMETHEUS)}
    isDefault: true
    uid: prometheus

  - name: Loki
    type: loki
    access: proxy
    url: http://{_endpoint(config, Component.LOKI)}
    isDefault: false
    uid: loki
    jsonData:
      maxLines: 1000
"""


def grafana_dashboard_provider(dashboards_path: str) -> str:
    return f"""apiVersion: 1

providers:
  - name: 'default'
    orgId: 1
    folder: ''
    type: file
    disableDeletion: false
    updateIntervalSeconds: 10
    options:
      path: {dashboards_path}
"""


def grafana_ini(config: AlloyKitConfig, layout: InstallLayout, data_dir: str) -> str:
    return f"""[server]
http_port = {config.ports.grafana}

[security]
admin_password = {config.grafana_admin_password}

[users]
allow_sign_up = false

[paths]
data = {data_dir}
logs = {layout.logs_dir}
provisioning = {layout.grafana_dir / "provisioning"}

[database]
type = sqlite3
"""


def render_all(
    config: AlloyKitConfig, layout: InstallLayout, data_dirs: Dict[Component, str]
) -> Dict[Path, str]:
    """Map every default config file path to its content."""
    dashboards_path = (
        "/var/lib/grafana/dashboards"
        if config.substrate == SubstrateKind.CONTAINER
        else str(layout.grafana_dir / "dashboards")
    )
    files = {
        layout.config_file("prometheus.yml"): prometheus_config(config),
        layout.config_file("loki.yml"): loki_config(config, data_dirs[Component.LOKI]),
        layout.config_file("alloy.alloy"): alloy_config(config),
        layout.grafana_dir / "provisioning" / "datasources" / "datasources.yml": grafana_datasources(config),
        layout.grafana_dir / "provisioning" / "dashboards" / "dashboards.yml": grafana_dashboard_provider(
            dashboards_path
        ),
    }
    if config.substrate == SubstrateKind.NATIVE:
        files[layout.config_file("grafana.ini")] = grafana_ini(
            config, layout, data_dirs[Component.GRAFANA]
        )
    return files


def write_default_configs(
    config: AlloyKitConfig, layout: InstallLayout, data_dirs: Dict[Component, str]
) -> None:
    for path, content in render_all(config, layout, data_dirs).items():
        atomic_write(path, content)
