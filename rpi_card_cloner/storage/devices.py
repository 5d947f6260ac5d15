"""Block device naming and command execution helpers.

Operations:
    - partition_node(): Build a partition device node from a disk and number
    - validate_device_path(): Reject paths that are not /dev nodes
    - run_command(): Run a command with logging of its output
    - run_checked_command(): Run a command and raise RuntimeError on failure
    - human_size(): Convert bytes to human-readable format (KB/MB/GB)

Implementation Notes:
    - Partition nodes use a "p" separator when the disk name ends in a digit
      (mmcblk0 -> mmcblk0p1, nvme0n1 -> nvme0n1p1, sda -> sda1)
    - Commands are always passed as argument lists, never through a shell
"""
import subprocess
from typing import Optional

from rpi_card_cloner.logging import LoggerFactory


log = LoggerFactory.for_system()

_FORBIDDEN_CHARS = (";", "&", "|", "$", "`", "\n", "\r", " ")


def validate_device_path(device: str) -> str:
    """Return ``device`` unchanged if it looks like a /dev node.

    Raises:
        ValueError: If the path is not under /dev or contains shell metacharacters
    """
    if not isinstance(device, str) or not device.startswith("/dev/"):
        raise ValueError(f"Invalid device path: {device}")
    if any(char in device for char in _FORBIDDEN_CHARS):
        raise ValueError(f"Device path contains invalid characters: {device}")
    return device


def partition_node(device: str, index: int) -> str:
    """Get the device node of partition ``index`` on ``device``."""
    separator = "p" if device[-1].isdigit() else ""
    return f"{device}{separator}{index}"


def run_command(command, check=True, log_output=True, log_command=True, input_text=None):
    if log_command:
        log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            command, check=check, text=True, capture_output=True, input=input_text
        )
    except subprocess.CalledProcessError as error:
        log.debug(f"Command failed: {' '.join(command)}")
        if error.stdout:
            log.debug(f"stdout: {error.stdout.strip()}")
        if error.stderr:
            log.debug(f"stderr: {error.stderr.strip()}")
        raise
    if result.stdout and (log_output or result.returncode != 0):
        log.trace(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        log.debug(f"stderr: {result.stderr.strip()}")
    if log_command:
        log.debug(f"Command completed with return code {result.returncode}")
    return result


def run_checked_command(command, input_text: Optional[str] = None) -> str:
    """Run a command and raise RuntimeError if it fails."""
    try:
        result = run_command(command, check=False, input_text=input_text)
    except OSError as error:
        raise RuntimeError(f"Command failed ({' '.join(command)}): {error}") from error
    if result.returncode != 0:
        stderr = result.stderr.strip() if result.stderr else ""
        stdout = result.stdout.strip() if result.stdout else ""
        message = stderr or stdout or "Command failed"
        raise RuntimeError(f"Command failed ({' '.join(command)}): {message}")
    return result.stdout


def human_size(size_bytes):
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"
