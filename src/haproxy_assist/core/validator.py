"""Configuration checks.

Three kinds of checks live here:

- ``validate_config_file`` shells out to ``haproxy -c -f <file>``; semantic
  checks of the configuration are left to HAProxy itself.
- Value format checks (``validate_bind_address``, ``validate_server_line``,
  ``validate_acl_expression``, ``validate_timeout_value``) run before the CLI
  stores user input. They check syntax only, never whether referenced
  sections or hosts exist.
- ``check_config_warnings`` reports common structural gaps in a store
  (no frontends, frontends without backends, backends without servers).
"""

from __future__ import annotations

import ipaddress
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from haproxy_assist.core.exceptions import ValidationError
from haproxy_assist.core.store import ConfigStore, SectionType

logger = logging.getLogger(__name__)

__all__ = [
    "VALIDATE_TIMEOUT",
    "ValidationResult",
    "check_config_warnings",
    "check_directive_value",
    "is_valid_ip",
    "is_valid_port",
    "validate_acl_expression",
    "validate_bind_address",
    "validate_config_file",
    "validate_server_line",
    "validate_timeout_value",
]

# Seconds before an ``haproxy -c`` run is abandoned
VALIDATE_TIMEOUT = 30

# Number with optional HAProxy time unit
TIMEOUT_PATTERN = re.compile(r"^[0-9]+(us|ms|s|m|h|d)?$")
_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_HOSTNAME_PATTERN = re.compile(r"^[A-Za-z0-9.-]+$")
_PORT_RANGE_PATTERN = re.compile(r"^([0-9]+)(?:-([0-9]+))?$")
# Address family prefixes accepted in front of bind/server addresses
_ADDRESS_PREFIXES = ("ipv4@", "ipv6@")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of an external check.

    ``skipped`` is True when the haproxy binary is not installed; ``valid``
    is then True as well, matching how a missing checker was never treated
    as a broken configuration.
    """

    valid: bool
    output: str = ""
    skipped: bool = False


def validate_config_file(path: Path, binary: str = "haproxy") -> ValidationResult:
    """Check ``path`` with ``<binary> -c -f <path>``.

    Args:
        path: Configuration file to check.
        binary: haproxy executable name or path.

    Returns:
        ValidationResult with the checker's combined output.

    Raises:
        ValidationError: File missing, or the checker timed out.

    """
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"Config file not found: {path}")

    try:
        result = subprocess.run(
            [binary, "-c", "-f", str(path)],
            capture_output=True,
            text=True,
            timeout=VALIDATE_TIMEOUT,
        )
    except FileNotFoundError:
        logger.warning("%s not found in PATH, skipping validation", binary)
        return ValidationResult(valid=True, output=f"{binary} not found", skipped=True)
    except subprocess.TimeoutExpired as e:
        logger.error("Validation timed out after %ss", VALIDATE_TIMEOUT)
        raise ValidationError(f"{binary} -c timed out after {VALIDATE_TIMEOUT}s") from e

    output = "\n".join(part.strip() for part in (result.stdout, result.stderr) if part.strip())
    if result.returncode == 0:
        logger.info("Configuration is valid: %s", path)
        return ValidationResult(valid=True, output=output)

    logger.error("Configuration check failed for %s (exit %d)", path, result.returncode)
    return ValidationResult(valid=False, output=output)


# ============================================================================
# Value format checks
# ============================================================================


def is_valid_ip(address: str) -> bool:
    """True for ``*``, an IPv4 address or an IPv6 address (brackets allowed)."""
    if address == "*":
        return True
    if address.startswith("[") and address.endswith("]"):
        address = address[1:-1]
    try:
        ipaddress.ip_address(address)
    except ValueError:
        return False
    return True


def is_valid_port(port: str) -> bool:
    """True for a decimal port number in 1..65535."""
    return port.isdigit() and 1 <= int(port) <= 65535


def _is_valid_port_range(text: str) -> bool:
    match = _PORT_RANGE_PATTERN.match(text)
    if match is None:
        return False
    low, high = match.group(1), match.group(2)
    if high is None:
        return is_valid_port(low)
    return is_valid_port(low) and is_valid_port(high) and int(low) <= int(high)


def _strip_prefix(address: str) -> str:
    for prefix in _ADDRESS_PREFIXES:
        if address.startswith(prefix):
            return address[len(prefix) :]
    return address


def _check_bind_endpoint(endpoint: str) -> None:
    if endpoint.startswith("/"):
        return  # UNIX socket path
    host, sep, port = _strip_prefix(endpoint).rpartition(":")
    if not sep:
        raise ValidationError(f"Bind address needs a port (address:port): {endpoint!r}")
    if host and not is_valid_ip(host):
        raise ValidationError(f"Invalid bind address: {host!r}")
    if not _is_valid_port_range(port):
        raise ValidationError(f"Invalid bind port: {port!r}")


def validate_bind_address(value: str) -> None:
    """Check a ``bind`` value: ``[addr]:port[,...] [options]``.

    The address may be empty, ``*``, an IP address or a UNIX socket path;
    ports may be ranges (``8000-8010``). Options after the address are not
    checked.

    Raises:
        ValidationError: Malformed address or port.

    """
    words = value.split()
    if not words:
        raise ValidationError("Bind address must not be empty")
    for endpoint in words[0].split(","):
        _check_bind_endpoint(endpoint)


def validate_server_line(value: str) -> None:
    """Check a ``server`` value: ``<name> <address>[:port] [options]``.

    Raises:
        ValidationError: Missing address, bad server name, address or port.

    """
    words = value.split()
    if len(words) < 2:
        raise ValidationError(f"Server needs a name and an address: {value!r}")
    name, address = words[0], _strip_prefix(words[1])
    if not _NAME_PATTERN.match(name):
        raise ValidationError(f"Invalid server name: {name!r}")

    host, port = address, ""
    if not is_valid_ip(address):
        host, sep, port = address.rpartition(":")
        if not sep:
            host, port = address, ""
    if not (is_valid_ip(host) or _HOSTNAME_PATTERN.match(host)):
        raise ValidationError(f"Invalid server address: {host!r}")
    if port and not is_valid_port(port):
        raise ValidationError(f"Invalid server port: {port!r}")


def validate_acl_expression(value: str) -> None:
    """Check an ``acl`` value: ``<name> <criterion> [flags] [values]``.

    Raises:
        ValidationError: Missing criterion or invalid ACL name.

    """
    words = value.split()
    if len(words) < 2:
        raise ValidationError(f"ACL needs a name and a criterion: {value!r}")
    if not _NAME_PATTERN.match(words[0]):
        raise ValidationError(f"Invalid ACL name: {words[0]!r}")


def validate_timeout_value(value: str) -> None:
    """Check a timeout: a number with an optional unit (us, ms, s, m, h, d).

    Raises:
        ValidationError: Not a valid timeout.

    """
    if not TIMEOUT_PATTERN.match(value.strip()):
        raise ValidationError(
            f"Invalid timeout value: {value!r} (expected a number with optional unit "
            "us/ms/s/m/h/d)"
        )


def check_directive_value(name: str, value: str) -> None:
    """Run the format check matching a directive name, if there is one.

    Raises:
        ValidationError: Value fails its format check.

    """
    name = " ".join(name.split())
    if name == "bind":
        validate_bind_address(value)
    elif name == "server":
        validate_server_line(value)
    elif name == "acl":
        validate_acl_expression(value)
    elif name.startswith("timeout "):
        validate_timeout_value(value)


# ============================================================================
# Structural warnings
# ============================================================================


def check_config_warnings(store: ConfigStore) -> list[str]:
    """Report common configuration gaps.

    Warns when no frontend or listen section exists, when frontends exist
    without any backend, and for each backend without servers. Nothing here
    is fatal; callers decide how to surface the messages.

    Returns:
        Warning messages in section order (empty when none).

    """
    warnings: list[str] = []
    frontends = store.sections(SectionType.FRONTEND)
    backends = store.sections(SectionType.BACKEND)
    listens = store.sections(SectionType.LISTEN)

    if not frontends and not listens:
        warnings.append("No frontends defined in configuration")
    if frontends and not backends and not listens:
        warnings.append("Frontends defined but no backends")
    for backend in backends:
        if not backend.values("server"):
            warnings.append(f"Backend {backend.name} has no servers defined")

    for message in warnings:
        logger.debug("Config warning: %s", message)
    if warnings:
        logger.info("Found %d warning(s) in configuration", len(warnings))
    else:
        logger.info("No configuration warnings")
    return warnings
