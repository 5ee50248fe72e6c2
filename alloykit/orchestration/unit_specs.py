"""Build UnitSpecs for every component of an instance on either substrate."""

import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..core.components import INSTALL_ORDER, get_spec
from ..core.enums import Component, SubstrateKind
from ..core.naming import network_name, unit_name, volume_name
from ..core.types import AlloyKitConfig
from ..utils.filesystem import InstallLayout
from .native import volume_dir
from .substrate import Mount, UnitSpec

HIGH_UID_THRESHOLD = 100000


def container_user(uid: Optional[int] = None) -> Optional[str]:
    """Run as root inside the container when the host UID exceeds the subuid range."""
    uid = os.getuid() if uid is None else uid
    return "0:0" if uid > HIGH_UID_THRESHOLD else None


def data_dirs(config: AlloyKitConfig) -> Dict[Component, str]:
    """Where each component keeps its data, as seen by the component itself."""
    if config.substrate == SubstrateKind.CONTAINER:
        return {c: get_spec(c).data_mount for c in Component}
    return {
        c: str(volume_dir(config.resolved_state_dir, volume_name(c, config.instance_name)))
        for c in Component
    }


def _container_mounts(component: Component, layout: InstallLayout, volume: str) -> Tuple[Mount, ...]:
    spec = get_spec(component)
    data = Mount(volume, spec.data_mount, named_volume=True)
    if component == Component.GRAFANA:
        return (
            data,
            Mount(str(layout.grafana_dir / "provisioning"), "/etc/grafana/provisioning", read_only=True),
            Mount(str(layout.grafana_dir / "dashboards"), "/var/lib/grafana/dashboards", read_only=True),
        )
    config_mount = Mount(
        str(layout.config_file(spec.config_name)), spec.container_config_path, read_only=True
    )
    if component == Component.ALLOY:
        return (
            config_mount,
            data,
            Mount("/var/log", "/var/log", read_only=True),
            Mount("/proc", "/host/proc", read_only=True),
            Mount("/sys", "/host/sys", read_only=True),
            Mount("/", "/host/root", read_only=True),
        )
    return (config_mount, data)


def container_unit_spec(
    config: AlloyKitConfig, component: Component, user: Optional[str] = None
) -> UnitSpec:
    spec = get_spec(component)
    instance = config.instance_name
    layout = InstallLayout(config.resolved_install_dir)
    volume = volume_name(component, instance)
    env: Dict[str, str] = {}
    if component == Component.GRAFANA:
        env = {
            "GF_SECURITY_ADMIN_PASSWORD": config.grafana_admin_password,
            "GF_USERS_ALLOW_SIGN_UP": "false",
        }
    return UnitSpec(
        name=unit_name(component, instance),
        component=component.value,
        instance=instance,
        image=spec.image,
        args=spec.container_args,
        network=network_name(instance),
        ports={config.ports.for_component(component): spec.container_port},
        mounts=_container_mounts(component, layout, volume),
        env=env,
        privileged=component == Component.ALLOY,
        user=user,
        volume=volume,
    )


def _native_command(config: AlloyKitConfig, component: Component, data_dir: Path) -> Tuple[str, ...]:
    layout = InstallLayout(config.resolved_install_dir)
    port = config.ports.for_component(component)
    binary = str(layout.bin_dir / component.value)
    if component == Component.PROMETHEUS:
        return (
            binary,
            f"--config.file={layout.config_file('prometheus.yml')}",
            f"--storage.tsdb.path={data_dir}",
            f"--web.listen-address=0.0.0.0:{port}",
            "--web.enable-remote-write-receiver",
        )
    if component == Component.LOKI:
        return (binary, f"-config.file={layout.config_file('loki.yml')}")
    if component == Component.ALLOY:
        return (
            binary,
            "run",
            f"--server.http.listen-addr=0.0.0.0:{port}",
            f"--storage.path={data_dir}",
            str(layout.config_file("alloy.alloy")),
        )
    return (
        binary,
        "server",
        f"--config={layout.config_file('grafana.ini')}",
        f"--homepath={layout.share_dir / 'grafana'}",
    )


def native_unit_spec(config: AlloyKitConfig, component: Component) -> UnitSpec:
    spec = get_spec(component)
    instance = config.instance_name
    layout = InstallLayout(config.resolved_install_dir)
    volume = volume_name(component, instance)
    data_dir = volume_dir(config.resolved_state_dir, volume)
    workdir = layout.share_dir / "grafana" if component == Component.GRAFANA else layout.root
    return UnitSpec(
        name=unit_name(component, instance),
        component=component.value,
        instance=instance,
        image=f"{component.value} {spec.version}",
        ports={config.ports.for_component(component): config.ports.for_component(component)},
        command=_native_command(config, component, data_dir),
        workdir=workdir,
        log_file=layout.logs_dir / f"{component.value}.log",
        volume=volume,
    )


def build_unit_specs(config: AlloyKitConfig) -> List[UnitSpec]:
    """UnitSpecs for every component in install order."""
    if config.substrate == SubstrateKind.CONTAINER:
        user = container_user()
        return [container_unit_spec(config, c, user=user) for c in INSTALL_ORDER]
    return [native_unit_spec(config, c) for c in INSTALL_ORDER]
