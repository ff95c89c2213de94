"""Container metadata readers.

A checkpoint archive carries the container engine's view of the container
next to the CRIU images:

- config.dump: engine container configuration (id, name, image, runtime)
- spec.dump: OCI runtime spec (mounts, annotations)
- network.status: Podman network state (optional)
- status: containerd container status (optional)

This module reads those files and derives the ContainerFacts shown at the
top of the tree. Missing or corrupt required files raise MetadataError;
absent optional fields simply stay empty.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from checkview.errors import MetadataError
from checkview.models import ContainerFacts, MountEntry

logger = logging.getLogger(__name__)

CONFIG_DUMP_FILE = "config.dump"
SPEC_DUMP_FILE = "spec.dump"
NETWORK_STATUS_FILE = "network.status"
STATUS_FILE = "status"

# Annotations
MANAGER_ANNOTATION = "io.container.manager"
CRIO_METADATA_ANNOTATION = "io.kubernetes.cri-o.Metadata"
CRIO_CREATED_ANNOTATION = "io.kubernetes.cri-o.Created"
CRIO_IP_ANNOTATION = "io.kubernetes.cri-o.IP.0"
CRI_CONTAINER_NAME_ANNOTATION = "io.kubernetes.cri.container-name"


# =============================================================================
# File Readers
# =============================================================================


def _read_json_file(checkpoint_dir: Path, name: str) -> Any:
    """Read and decode a JSON metadata file from a checkpoint directory."""
    path = Path(checkpoint_dir) / name
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise MetadataError(f"{name} not found in {checkpoint_dir}", path) from e
    except json.JSONDecodeError as e:
        raise MetadataError(f"failed to parse {name}", path) from e
    except OSError as e:
        raise MetadataError(f"failed to read {name}", path) from e


def _read_json_object(checkpoint_dir: Path, name: str) -> dict[str, Any]:
    data = _read_json_file(checkpoint_dir, name)
    if not isinstance(data, dict):
        raise MetadataError(f"{name} is not a JSON object", Path(checkpoint_dir) / name)
    return data


def read_config_dump(checkpoint_dir: Path) -> dict[str, Any]:
    """Read the container engine's configuration dump."""
    logger.debug(f"Reading {CONFIG_DUMP_FILE} from {checkpoint_dir}")
    return _read_json_object(checkpoint_dir, CONFIG_DUMP_FILE)


def read_spec_dump(checkpoint_dir: Path) -> dict[str, Any]:
    """Read the OCI runtime spec dump."""
    logger.debug(f"Reading {SPEC_DUMP_FILE} from {checkpoint_dir}")
    return _read_json_object(checkpoint_dir, SPEC_DUMP_FILE)


def read_network_status(checkpoint_dir: Path) -> Any | None:
    """Read Podman's network.status, or None if the archive has none."""
    if not (Path(checkpoint_dir) / NETWORK_STATUS_FILE).exists():
        return None
    return _read_json_file(checkpoint_dir, NETWORK_STATUS_FILE)


def read_status_file(checkpoint_dir: Path) -> dict[str, Any] | None:
    """Read containerd's status file, or None if the archive has none."""
    if not (Path(checkpoint_dir) / STATUS_FILE).exists():
        return None
    return _read_json_object(checkpoint_dir, STATUS_FILE)


# =============================================================================
# Spec Helpers
# =============================================================================


def get_mounts(spec: dict[str, Any]) -> list[MountEntry]:
    """Mounts from the OCI spec, in spec order."""
    mounts = spec.get("mounts") or []
    if not isinstance(mounts, list):
        raise MetadataError("spec.dump mounts is not a list")
    return [
        MountEntry(
            destination=m.get("destination", ""),
            type=m.get("type", ""),
            source=m.get("source", ""),
        )
        for m in mounts
    ]


def _annotations(spec: dict[str, Any]) -> dict[str, str]:
    annotations = spec.get("annotations") or {}
    if not isinstance(annotations, dict):
        raise MetadataError(f"{SPEC_DUMP_FILE} annotations is not an object")
    return annotations


def _format_timestamp(value: Any) -> str:
    """Format an engine timestamp as RFC 3339 with whole seconds.

    Values that don't parse are shown as given.
    """
    if not value:
        return ""
    if isinstance(value, datetime):
        parsed = value
    else:
        # fromisoformat() rejects nanosecond precision
        text = re.sub(r"(\d{2}:\d{2}:\d{2})\.\d+", r"\1", str(value))
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return str(value)
    formatted = parsed.replace(microsecond=0).isoformat()
    return formatted.replace("+00:00", "Z")


def _first_entry(entries: Any) -> dict[str, Any]:
    """First object of an optional list in network.status, or {}."""
    if not entries:
        return {}
    if not isinstance(entries, list) or not isinstance(entries[0], dict):
        raise MetadataError(f"malformed {NETWORK_STATUS_FILE}")
    return entries[0]


def _podman_network(network_status: Any) -> tuple[str, str]:
    """First IP and MAC address from network.status.

    Podman 4+ writes a mapping of network name to interface status; older
    CNI-based versions write a list of CNI results.

    Raises:
        MetadataError: The file does not have either shape.
    """
    if isinstance(network_status, dict):
        for network in network_status.values():
            interfaces = network.get("interfaces", {}) if isinstance(network, dict) else None
            if not isinstance(interfaces, dict):
                raise MetadataError(f"malformed {NETWORK_STATUS_FILE}")
            for interface in interfaces.values():
                if not isinstance(interface, dict):
                    raise MetadataError(f"malformed {NETWORK_STATUS_FILE}")
                subnet = _first_entry(interface.get("subnets"))
                ip = str(subnet.get("ipnet", "")).split("/")[0]
                return ip, interface.get("mac_address", "")
    elif isinstance(network_status, list):
        for result in network_status:
            if not isinstance(result, dict):
                raise MetadataError(f"malformed {NETWORK_STATUS_FILE}")
            ip = str(_first_entry(result.get("ips")).get("address", "")).split("/")[0]
            mac = _first_entry(result.get("interfaces")).get("mac", "")
            return ip, mac
    elif network_status is not None:
        raise MetadataError(f"malformed {NETWORK_STATUS_FILE}")
    return "", ""


# =============================================================================
# Container Facts
# =============================================================================


def _podman_info(checkpoint_dir: Path, config: dict[str, Any]) -> dict[str, str]:
    ip, mac = _podman_network(read_network_status(checkpoint_dir))
    return {
        "name": config.get("name", ""),
        "created": _format_timestamp(config.get("createdTime")),
        "engine": "Podman",
        "ip": ip,
        "mac": mac,
    }


def _crio_info(spec: dict[str, Any]) -> dict[str, str]:
    annotations = _annotations(spec)
    try:
        crio_metadata = json.loads(annotations.get(CRIO_METADATA_ANNOTATION, ""))
    except (json.JSONDecodeError, TypeError) as e:
        raise MetadataError(f"failed to read {CRIO_METADATA_ANNOTATION}") from e
    if not isinstance(crio_metadata, dict):
        raise MetadataError(f"failed to read {CRIO_METADATA_ANNOTATION}: not a JSON object")
    return {
        "name": crio_metadata.get("name", ""),
        "created": annotations.get(CRIO_CREATED_ANNOTATION, ""),
        "engine": "CRI-O",
        "ip": annotations.get(CRIO_IP_ANNOTATION, ""),
    }


def _containerd_info(status: dict[str, Any], spec: dict[str, Any]) -> dict[str, str]:
    annotations = _annotations(spec)
    created_ns = status.get("CreatedAt") or 0
    created = (
        _format_timestamp(datetime.fromtimestamp(created_ns / 1e9, tz=UTC))
        if created_ns
        else ""
    )
    return {
        "name": annotations.get(CRI_CONTAINER_NAME_ANNOTATION, ""),
        "created": created,
        "engine": "containerd",
    }


def get_container_info(
    checkpoint_dir: Path,
    spec: dict[str, Any],
    config: dict[str, Any],
) -> ContainerFacts:
    """Derive display facts for the container in a checkpoint.

    The engine is picked from the io.container.manager annotation; a
    checkpoint without one is treated as containerd when it carries a
    status file.

    Raises:
        MetadataError: Unknown container manager or unreadable engine data.
    """
    manager = _annotations(spec).get(MANAGER_ANNOTATION, "")
    if manager == "libpod":
        info = _podman_info(checkpoint_dir, config)
    elif manager == "cri-o":
        info = _crio_info(spec)
    else:
        status = read_status_file(checkpoint_dir)
        if status is None:
            raise MetadataError(f"unknown container manager found: {manager}", checkpoint_dir)
        info = _containerd_info(status, spec)

    logger.debug(f"Detected {info['engine']} checkpoint in {checkpoint_dir}")
    return ContainerFacts(
        image=config.get("rootfsImageName", ""),
        id=config.get("id", ""),
        runtime=config.get("ociRuntime", ""),
        **info,
    )
