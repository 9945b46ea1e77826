# provisioner/config.py
"""
Centralized constants and default values for the workstation provisioner.

This module defines the default locations of the state directory and log
directory, the sudo timeout drop-in, the script version and the default
package lists used by the declared phases. Values here are static defaults;
the effective configuration is resolved by provisioner.config_loader.
"""

from pathlib import Path

# --- State Configuration ---
# Must live on a filesystem mounted early that no step reformats or remounts.
STATE_DIR_DEFAULT: str = "/var/cache/system-installer"
COMPLETED_SUBDIR: str = "completed"
VALUES_SUBDIR: str = "values"
ERRORS_SUBDIR: str = "errors"
RUN_LOCK_FILENAME: str = "installer.lock"
RESUME_PHASE_FILENAME: str = "current_phase"
RESUME_STEP_FILENAME: str = "next_step"
REBOOT_MARKER_FILENAME: str = "reboot_required"

# --- Logging Configuration ---
LOG_DIR_DEFAULT: str = "/var/log/system-installer"
LOG_FILE_BASENAME: str = "installer"
LOG_PREFIX_DEFAULT: str = "[WS-SETUP]"
LOG_MODES: tuple[str, ...] = ("full", "normal", "minimal", "quiet")
LOG_MODE_DEFAULT: str = "normal"

# --- Privilege Configuration ---
SUDO_TIMEOUT_DEFAULT: int = 3600
SUDOERS_TIMEOUT_FILE: Path = Path("/etc/sudoers.d/installer-timeout")

# Represents the version of the provisioning logic.
SCRIPT_VERSION: str = "2.0.0"

CONFIG_FILE_DEFAULT: str = "config.yaml"
ENV_PREFIX: str = "PROVISIONER_"

# Selector meaning "every registered phase".
ALL_PHASES: str = "all"

# --- Exit Codes ---
EXIT_OK: int = 0
EXIT_FATAL: int = 1
EXIT_CONFIG_ERROR: int = 2
EXIT_INTERRUPTED: int = 130

# --- Package Lists (for apt installation) ---
CORE_SYSTEM_PACKAGES: list[str] = [
    "rsync",
    "git",
    "curl",
    "wget",
    "apt-transport-https",
    "ca-certificates",
    "gnupg",
    "lsb-release",
    "software-properties-common",
    "dnsutils",
    "openssh-server",
    "ufw",
]

CORE_UTILITY_PACKAGES: list[str] = [
    "htop",
    "iotop",
    "lm-sensors",
    "ncdu",
    "parted",
    "smartmontools",
    "tmux",
    "tree",
    "vim",
    "p7zip-full",
    "unzip",
    "zip",
    "xz-utils",
]

DEVELOPMENT_PACKAGES: list[str] = [
    "build-essential",
    "cmake",
    "pkg-config",
    "python3-pip",
    "python3-venv",
    "python3-dev",
    "nodejs",
    "npm",
]

LOWLATENCY_KERNEL_PACKAGES: list[str] = [
    "linux-lowlatency",
    "linux-headers-lowlatency",
]

PIPEWIRE_PACKAGES: list[str] = [
    "pipewire",
    "pipewire-pulse",
    "pipewire-jack",
    "pipewire-alsa",
    "libspa-0.2-bluetooth",
    "pipewire-audio-client-libraries",
    "wireplumber",
]

AUDIO_UTILITY_PACKAGES: list[str] = [
    "pavucontrol",
    "alsa-utils",
    "qjackctl",
    "helvum",
    "easyeffects",
]

PLASMA_PACKAGES: list[str] = [
    "kde-plasma-desktop",
    "sddm",
    "sddm-theme-breeze",
    "dolphin",
    "konsole",
    "kate",
]

CONTAINER_PACKAGES: list[str] = [
    "docker.io",
    "docker-compose-v2",
    "docker-buildx",
]

# --- Storage layout managed by the LVM phase ---
LVM_REQUIRED_MOUNTS: list[str] = ["/home", "/data", "/docker"]
DATA_DIRECTORIES: list[str] = [
    "/data/Documents",
    "/data/Development/repo",
    "/data/Music",
    "/data/Pictures",
    "/data/Video",
    "/data/Archive",
]

SYSCTL_PERFORMANCE_FILE: Path = Path("/etc/sysctl.d/99-workstation-performance.conf")
SYSCTL_PERFORMANCE_SETTINGS: dict[str, str] = {
    "vm.swappiness": "10",
    "vm.vfs_cache_pressure": "50",
    "fs.inotify.max_user_watches": "524288",
}

SYSCTL_NETWORK_FILE: Path = Path("/etc/sysctl.d/99-workstation-network.conf")
SYSCTL_NETWORK_SETTINGS: dict[str, str] = {
    "net.core.default_qdisc": "fq",
    "net.ipv4.tcp_congestion_control": "bbr",
    "net.ipv4.tcp_fastopen": "3",
}

# --- Symbols for Logging ---
SYMBOLS: dict[str, str] = {
    "success": "✅",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "step": "▶",
    "section": "═",
    "gear": "⚙️",
    "package": "📦",
    "rocket": "🚀",
    "sparkles": "✨",
    "critical": "🔥",
    "debug": "🐛",
    "skip": "⏭️",
}
