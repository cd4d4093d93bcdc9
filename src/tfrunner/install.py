"""Terraform binary installation.

Installs an exact terraform release into a throwaway directory so each
workflow run uses a known version, and removes it afterwards. When
``exec_path`` is configured the existing binary is used as-is and never
removed.
"""

import hashlib
import io
import logging
import os
import platform
import shutil
import stat
import tempfile
import zipfile
from pathlib import Path
from typing import Optional

import requests

from config import Settings

logger = logging.getLogger(__name__)

# platform.machine() -> release arch
ARCH_ALIASES = {
    'x86_64': 'amd64',
    'amd64': 'amd64',
    'aarch64': 'arm64',
    'arm64': 'arm64',
    'i386': '386',
    'i686': '386',
    'armv7l': 'arm',
}


class InstallError(Exception):
    """Terraform could not be installed or located."""


def release_platform() -> tuple[str, str]:
    """Return (os, arch) as used in terraform release file names."""
    system = platform.system().lower()
    machine = platform.machine().lower()
    arch = ARCH_ALIASES.get(machine)
    if arch is None:
        raise InstallError(f"Unsupported architecture for terraform releases: {machine}")
    return system, arch


def _expected_checksum(sums: str, filename: str) -> str:
    """Find filename's SHA-256 in a SHA256SUMS document."""
    for line in sums.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1] == filename:
            return parts[0].lower()
    raise InstallError(f"No checksum for {filename} in SHA256SUMS")


class TerraformInstaller:
    """Provide a terraform executable for one workflow run."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self._install_dir: Optional[Path] = None
        self.exec_path: Optional[Path] = None

    @property
    def managed(self) -> bool:
        """True when this installer downloaded the binary and owns its removal."""
        return self._install_dir is not None

    def install(self) -> Path:
        """Return a usable terraform binary path, downloading if needed."""
        if self.exec_path is not None:
            return self.exec_path

        if self.settings.exec_path is not None:
            path = self.settings.exec_path
            if not path.is_file() or not os.access(path, os.X_OK):
                raise InstallError(f"Configured terraform is not an executable file: {path}")
            logger.debug(f"Using configured terraform: {path}")
            self.exec_path = path
            return path

        self.exec_path = self._download()
        return self.exec_path

    def _fetch(self, url: str) -> bytes:
        timeout = self.settings.timeout('download')
        try:
            resp = requests.get(url, timeout=timeout)
        except requests.exceptions.Timeout as e:
            raise InstallError(f"Timeout downloading {url}") from e
        except requests.exceptions.RequestException as e:
            raise InstallError(f"Cannot download {url}: {e}") from e
        if resp.status_code != 200:
            raise InstallError(f"Unexpected response downloading {url}: {resp.status_code}")
        return resp.content

    def _download(self) -> Path:
        version = self.settings.version
        system, arch = release_platform()
        base_url = f"{self.settings.releases_url}/{version}"
        zip_name = f"terraform_{version}_{system}_{arch}.zip"
        sums_name = f"terraform_{version}_SHA256SUMS"

        logger.info(f"Installing terraform {version} ({system}/{arch})...")
        archive = self._fetch(f"{base_url}/{zip_name}")
        sums = self._fetch(f"{base_url}/{sums_name}").decode('utf-8', errors='replace')

        expected = _expected_checksum(sums, zip_name)
        actual = hashlib.sha256(archive).hexdigest()
        if actual != expected:
            raise InstallError(
                f"Checksum mismatch for {zip_name}: expected {expected}, got {actual}"
            )

        binary_name = 'terraform.exe' if system == 'windows' else 'terraform'
        try:
            install_dir = Path(tempfile.mkdtemp(
                prefix=f'terraform-{version}-',
                dir=self.settings.install_dir,
            ))
        except OSError as e:
            raise InstallError(
                f"Cannot create install directory under {self.settings.install_dir}: {e}"
            ) from e
        self._install_dir = install_dir

        exec_path = install_dir / binary_name
        try:
            with zipfile.ZipFile(io.BytesIO(archive)) as zf:
                if binary_name not in zf.namelist():
                    raise InstallError(f"{zip_name} does not contain {binary_name}")
                zf.extract(binary_name, install_dir)
            exec_path.chmod(exec_path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except zipfile.BadZipFile as e:
            self.remove()
            raise InstallError(f"Corrupt archive {zip_name}: {e}") from e
        except OSError as e:
            self.remove()
            raise InstallError(f"Cannot install terraform into {install_dir}: {e}") from e
        except Exception:
            self.remove()
            raise

        logger.debug(f"Installed terraform {version} at {exec_path}")
        return exec_path

    def remove(self) -> None:
        """Delete a downloaded install. No-op for configured binaries."""
        if self._install_dir is None:
            return
        install_dir = self._install_dir
        self._install_dir = None
        self.exec_path = None
        logger.debug(f"Removing terraform install: {install_dir}")
        shutil.rmtree(install_dir)
