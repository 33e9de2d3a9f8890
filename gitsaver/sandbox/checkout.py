"""Authenticated git clones for repository backups.

The clone is the only place the installation token leaves the process, so
the URL it is sent to is checked first:

  - validate_repo_url() only admits HTTPS URLs without embedded credentials,
    on an allow-listed host, that do not resolve to a private, loopback or
    link-local address (SSRF guard).
  - Credentials are handed to git through its environment-based config
    (``http.extraHeader``), never through argv or the URL, so they do not
    show up in ``ps`` output or in the clone's ``.git/config``.
  - Every git child process gets CPU/memory rlimits and a wall-clock timeout.
"""

import base64
import ipaddress
import logging
import os
import socket
import subprocess
from collections.abc import Iterable
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import urlparse, urlunparse

from gitsaver.sandbox.limits import apply_resource_limits

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# SSRF guard
# ---------------------------------------------------------------------------

_PRIVATE_NETWORKS: list[ipaddress.IPv4Network | ipaddress.IPv6Network] = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),  # link-local / cloud metadata
    ipaddress.ip_network("100.64.0.0/10"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]


class SandboxError(Exception):
    """Raised when a clone URL fails a security check."""


class GitCloneError(RuntimeError):
    """Raised when ``git clone`` fails, times out or cannot be started.

    ``stderr`` carries git's own diagnostic text.
    """

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


def redact_repo_url(url: str) -> str:
    """Return a clone URL safe to write into logs.

    Masks embedded credentials while preserving host/path context.
    """
    parsed = urlparse(url)
    if parsed.username is None:
        return url

    host = parsed.hostname or ""
    if not host:
        return url

    port = f":{parsed.port}" if parsed.port else ""
    if parsed.password is not None:
        auth = f"{parsed.username}:***@"
    else:
        auth = "***@"

    return urlunparse(parsed._replace(netloc=f"{auth}{host}{port}"))


def validate_repo_url(url: str, allowed_hosts: Optional[Iterable[str]] = None) -> None:
    """Validate a repository URL before any credential is sent to it.

    Args:
        url: The clone URL taken from the webhook payload.
        allowed_hosts: Hostnames the token may be sent to. None disables the
            allow list (the private-address check still applies).

    Raises:
        SandboxError: If the URL is rejected.
    """
    if not url:
        raise SandboxError("Repository URL must not be empty")

    parsed = urlparse(url)
    safe_url = redact_repo_url(url)

    if parsed.scheme != "https":
        raise SandboxError(
            f"Repository URL must use HTTPS (got scheme '{parsed.scheme}'): {safe_url}"
        )

    if parsed.username is not None or parsed.password is not None:
        raise SandboxError(f"Repository URL must not embed credentials: {safe_url}")

    hostname = parsed.hostname
    if not hostname:
        raise SandboxError(f"Repository URL has no hostname: {safe_url}")

    if allowed_hosts is not None:
        allowed = {h.lower() for h in allowed_hosts}
        if hostname.lower() not in allowed:
            raise SandboxError(
                f"Repository host '{hostname}' is not in the allowed clone hosts: {safe_url}"
            )

    try:
        addr_infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror as exc:
        raise SandboxError(f"Cannot resolve hostname '{hostname}': {exc}")

    for _family, _type, _proto, _canonname, sockaddr in addr_infos:
        try:
            ip = ipaddress.ip_address(sockaddr[0])
        except ValueError:
            continue

        for private_net in _PRIVATE_NETWORKS:
            if ip in private_net:
                raise SandboxError(
                    f"SSRF: repository hostname '{hostname}' resolves to "
                    f"private address {ip} (network {private_net}): {safe_url}"
                )

    logger.debug("URL validation passed: %s", safe_url)


# ---------------------------------------------------------------------------
# Cloners
# ---------------------------------------------------------------------------


class Cloner(Protocol):
    """Anything that can clone ``url`` into ``dest_dir`` with basic-auth credentials."""

    def clone(
        self,
        url: str,
        username: str,
        password: str,
        dest_dir: Path,
        timeout: Optional[float] = None,
    ) -> None: ...


def _credential_env(username: str, password: str) -> dict[str, str]:
    basic = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return {
        "GIT_TERMINAL_PROMPT": "0",
        "GIT_CONFIG_COUNT": "1",
        "GIT_CONFIG_KEY_0": "http.extraHeader",
        "GIT_CONFIG_VALUE_0": f"Authorization: Basic {basic}",
    }


class GitCliCloner:
    """Clone with the ``git`` executable on PATH.

    Args:
        depth: Passed as ``--depth`` when non-zero. Backups default to a
            full clone.
        git_binary: Name or path of the git executable.
    """

    def __init__(self, depth: int = 0, git_binary: str = "git"):
        self.depth = depth
        self.git_binary = git_binary

    def build_command(self, url: str, dest_dir: Path) -> list[str]:
        cmd = [self.git_binary, "clone", "--quiet"]
        if self.depth:
            cmd += ["--depth", str(self.depth)]
        cmd += ["--", url, str(dest_dir)]
        return cmd

    def clone(
        self,
        url: str,
        username: str,
        password: str,
        dest_dir: Path,
        timeout: Optional[float] = None,
    ) -> None:
        cmd = self.build_command(url, dest_dir)
        env = {**os.environ, **_credential_env(username, password)}

        logger.info("Cloning %s into %s", redact_repo_url(url), dest_dir)

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=env,
            )
        except OSError as exc:
            raise GitCloneError(f"could not start git: {exc}") from exc

        apply_resource_limits(proc.pid)

        try:
            _stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            _stdout, stderr = proc.communicate()
            raise GitCloneError(
                f"git clone timed out after {timeout:g}s",
                returncode=proc.returncode,
                stderr=(stderr or "").strip(),
            )

        if proc.returncode != 0:
            stderr = (stderr or "").strip()
            raise GitCloneError(
                f"git clone failed (exit {proc.returncode}): {stderr}",
                returncode=proc.returncode,
                stderr=stderr,
            )

        logger.info("Clone complete: %s", dest_dir)
