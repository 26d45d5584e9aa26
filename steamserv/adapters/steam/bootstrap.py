"""
SteamCMD bootstrap — download, unpack and initialise SteamCMD.

Used by ``steamserv config init`` on hosts without a packaged
``steamcmd``. The first ``+quit`` run lets SteamCMD self-update, which
can take a while.
"""

from __future__ import annotations

import logging
import subprocess
import tarfile
import urllib.request
from pathlib import Path

from steamserv.core.errors import AdapterFailureError, FilesystemError

logger = logging.getLogger(__name__)

STEAMCMD_URL = "https://steamcdn-a.akamaihd.net/client/installer/steamcmd_linux.tar.gz"
STEAMCMD_SCRIPT = "steamcmd.sh"
_ARCHIVE_NAME = "steamcmd_linux.tar.gz"


def download_steamcmd(target_dir: Path, url: str = STEAMCMD_URL, timeout: int = 60) -> Path:
    """Fetch and extract the SteamCMD archive into ``target_dir``.

    Returns:
        Path to ``steamcmd.sh``.

    Raises:
        FilesystemError: If the directory cannot be written.
        AdapterFailureError: If the download or extraction fails.
    """
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Cannot create {target_dir}: {e}") from e

    archive = target_dir / _ARCHIVE_NAME
    logger.info("Downloading SteamCMD from %s", url)

    try:
        req = urllib.request.Request(url, headers={"User-Agent": "steamserv/1.0"})
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            archive.write_bytes(resp.read())
    except OSError as e:
        raise AdapterFailureError(f"SteamCMD download failed: {e}") from e

    try:
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(target_dir, filter="data")
    except (tarfile.TarError, OSError) as e:
        raise AdapterFailureError(f"Could not extract SteamCMD: {e}") from e
    finally:
        archive.unlink(missing_ok=True)

    script = target_dir / STEAMCMD_SCRIPT
    if not script.is_file():
        raise AdapterFailureError(f"SteamCMD archive did not contain {STEAMCMD_SCRIPT}")
    return script


def initialise_steamcmd(script: Path, timeout: int = 900) -> None:
    """First run: let SteamCMD update itself and exit.

    Raises:
        AdapterFailureError: If SteamCMD does not exit cleanly.
    """
    logger.info("Initialising SteamCMD at %s", script)
    try:
        result = subprocess.run(
            [str(script), "+quit"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise AdapterFailureError(f"SteamCMD initialisation timed out ({timeout}s)") from e
    except OSError as e:
        raise AdapterFailureError(f"Could not run {script}: {e}") from e

    if result.returncode != 0:
        tail = "\n".join((result.stdout or "").splitlines()[-10:])
        raise AdapterFailureError(
            f"SteamCMD initialisation exited with code {result.returncode}",
            detail=tail,
        )


def install_steamcmd(target_dir: Path) -> Path:
    """Download and initialise SteamCMD. Returns the script path."""
    script = download_steamcmd(target_dir)
    initialise_steamcmd(script)
    return script
