"""Base system steps: cloud-init wait, packages, time sync and iptables."""

from __future__ import annotations

import logging

from eks_worker_ami.errors import InstallError
from eks_worker_ami.steps.base import StepContext
from eks_worker_ami.steps.files import move_file, write_file

logger = logging.getLogger(__name__)

BASE_PACKAGES: tuple[str, ...] = (
    "conntrack",
    "chrony",
    "awscli",
    "wget",
    "curl",
    "socat",
    "unzip",
    "jq",
    "nfs-kernel-server",
    "apt-transport-https",
    "ca-certificates",
    "software-properties-common",
    "gnupg2",
)

CHRONY_CONF = "/etc/chrony/chrony.conf"
# Amazon Time Sync Service, reachable from every EC2 instance
AMAZON_TIME_SYNC_SERVER = "server 169.254.169.123 prefer iburst minpoll 4 maxpoll 4"

CLOCKSOURCE_DIR = "/sys/devices/system/clocksource/clocksource0"

IPTABLES_RULES = "/etc/network/iptables"
IPTABLES_RESTORE_UNIT = "iptables-restore.service"
SYSTEMD_UNIT_DIR = "/etc/systemd/system"


def wait_for_cloud_init(ctx: StepContext) -> str:
    """Block until cloud-init reports it has finished."""
    if not ctx.runner.available("cloud-init"):
        return "cloud-init not installed, nothing to wait for"

    logger.info("Waiting for cloud-init to finish")
    ctx.runner.run(
        ["cloud-init", "status", "--wait"],
        sudo=False,
        timeout=ctx.settings.cloud_init_timeout,
    )
    return "cloud-init finished"


def install_packages(ctx: StepContext) -> str:
    """Update apt and install the base package set."""
    runner = ctx.runner
    runner.run(["add-apt-repository", "-y", "universe"])
    runner.run(["apt-get", "update", "-y"])
    runner.run(["apt-get", "install", "-y", *BASE_PACKAGES])
    return f"installed {len(BASE_PACKAGES)} packages"


def prepend_time_server(conf_text: str, server_line: str = AMAZON_TIME_SYNC_SERVER) -> str:
    """Return chrony.conf content with the preferred server on the first line.

    Content that already starts with the server line is returned unchanged.
    """
    if conf_text.splitlines()[:1] == [server_line]:
        return conf_text
    return f"{server_line}\n{conf_text}"


def configure_time_sync(ctx: StepContext) -> str:
    """Prefer Amazon Time Sync Service and switch xen clocksource to tsc."""
    ctx.runner.run(["update-rc.d", "chrony", "defaults", "80", "20"])

    conf_path = ctx.host_path(CHRONY_CONF)
    if conf_path.is_file():
        try:
            updated = prepend_time_server(conf_path.read_text(encoding="utf-8"))
        except OSError as e:
            raise InstallError(f"Failed to read {conf_path}: {e}") from e
        write_file(conf_path, updated)
        logger.info("Configured %s to prefer Amazon Time Sync Service", conf_path)
    elif ctx.settings.dry_run:
        logger.warning("%s not found (dry run), skipping chrony configuration", conf_path)
    else:
        raise InstallError(f"chrony configuration not found: {conf_path}")

    if switch_clocksource_to_tsc(ctx):
        return "chrony configured, clocksource switched to tsc"
    return "chrony configured"


def switch_clocksource_to_tsc(ctx: StepContext) -> bool:
    """Switch the clocksource from xen to tsc when tsc is available.

    Returns:
        True if the clocksource was switched.
    """
    clock_dir = ctx.host_path(CLOCKSOURCE_DIR)
    current_path = clock_dir / "current_clocksource"
    available_path = clock_dir / "available_clocksource"

    try:
        current = current_path.read_text(encoding="utf-8")
        available = available_path.read_text(encoding="utf-8")
    except OSError:
        current = available = ""

    if "xen" not in current or "tsc" not in available:
        logger.info("tsc as a clock source is not applicable, skipping.")
        return False

    write_file(current_path, "tsc\n")
    logger.info("Switched clocksource from xen to tsc")
    return True


def configure_network(ctx: StepContext) -> str:
    """Persist iptables rules and restore them on boot."""
    rules = ctx.runner.output(["iptables-save"], sudo=True)
    write_file(ctx.host_path(IPTABLES_RULES), f"{rules}\n" if rules else "")

    move_file(
        ctx.template(IPTABLES_RESTORE_UNIT),
        ctx.host_path(f"{SYSTEMD_UNIT_DIR}/{IPTABLES_RESTORE_UNIT}"),
    )

    ctx.runner.run(["systemctl", "daemon-reload"])
    ctx.runner.run(["systemctl", "enable", "iptables-restore"])
    return "iptables rules persisted"


__all__ = [
    "AMAZON_TIME_SYNC_SERVER",
    "BASE_PACKAGES",
    "configure_network",
    "configure_time_sync",
    "install_packages",
    "prepend_time_server",
    "switch_clocksource_to_tsc",
    "wait_for_cloud_init",
]
