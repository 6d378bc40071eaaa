# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Cluster health, status, node discovery and layout staging.

The backend computes layouts; this module only reshapes its v2 payloads for
the dashboard and converts the dashboard's staging format back.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from gdash.core.units import parse_capacity
from gdash.infra.garage_api import GarageApiError, GarageClient

DEFAULT_ADMIN_PORT = 3903
DEFAULT_RPC_PORT = 3901


def normalize_health(raw: Dict[str, Any]) -> Dict[str, Any]:
    storage_ok = raw.get("storageNodesUp")
    if storage_ok is None:
        storage_ok = raw.get("storageNodesOk", 0)
    return {
        "status": raw.get("status"),
        "knownNodes": raw.get("knownNodes"),
        "connectedNodes": raw.get("connectedNodes"),
        "storageNodes": raw.get("storageNodes"),
        "storageNodesOk": storage_ok,
        "partitions": raw.get("partitions"),
        "partitionsQuorum": raw.get("partitionsQuorum"),
        "partitionsAllOk": raw.get("partitionsAllOk"),
    }


def normalize_status(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Turn the v2 node list into a ``{node_id: info}`` record."""
    nodes: Dict[str, Dict[str, Any]] = {}
    node_version = ""
    for n in raw.get("nodes") or []:
        if not node_version and n.get("garageVersion"):
            node_version = n["garageVersion"]
        role = n.get("role") or {}
        nodes[n["id"]] = {
            "addr": n.get("addr"),
            "isUp": bool(n.get("isUp")),
            "lastSeenSecsAgo": n.get("lastSeenSecsAgo"),
            "hostname": n.get("hostname", ""),
            "zone": role.get("zone"),
            "capacity": role.get("capacity"),
            "tags": role.get("tags"),
            "draining": bool(n.get("draining", False)),
            "dataPartition": n.get("dataPartition"),
        }

    first = next(iter(nodes), "")
    return {
        "node": first,
        "garageVersion": raw.get("garageVersion") or node_version,
        "garageFeatures": raw.get("garageFeatures") or [],
        "rustVersion": raw.get("rustVersion") or "",
        "dbEngine": raw.get("dbEngine") or "",
        "layoutVersion": raw.get("layoutVersion"),
        "nodes": nodes,
    }


def _role_record(r: Dict[str, Any]) -> Dict[str, Any]:
    return {"zone": r.get("zone", ""), "capacity": r.get("capacity"), "tags": r.get("tags") or []}


def normalize_layout(raw: Dict[str, Any]) -> Dict[str, Any]:
    # Gateway nodes (capacity null) are not storage roles; a staged null capacity means removal.
    roles = {r["id"]: _role_record(r) for r in raw.get("roles") or [] if r.get("capacity") is not None}
    staged: Dict[str, Optional[Dict[str, Any]]] = {}
    for r in raw.get("stagedRoleChanges") or []:
        staged[r["id"]] = _role_record(r) if r.get("capacity") is not None else None
    return {"version": raw.get("version"), "roles": roles, "stagedRoleChanges": staged}


def _capacity(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid capacity: {value!r}")
    if isinstance(value, (int, float)):
        capacity: Optional[int] = round(value)
    else:
        capacity = parse_capacity(str(value))
    if capacity is None or capacity <= 0:
        raise ValueError(f"Invalid capacity: {value!r}. Use a format like 100GB, 1TB or 500000000")
    return capacity


def staged_changes_to_roles(changes: Any) -> List[Dict[str, Any]]:
    """``{node_id: {zone, capacity, tags} | None}`` -> v2 ``roles`` list."""
    if not isinstance(changes, dict):
        raise ValueError("Layout changes must be an object mapping node IDs to roles")
    roles: List[Dict[str, Any]] = []
    for node_id, role in changes.items():
        if role is None:
            roles.append({"id": node_id, "zone": "", "capacity": None, "tags": []})
            continue
        if not isinstance(role, dict):
            raise ValueError(f"Role for node {node_id} must be an object or null")
        zone = str(role.get("zone") or "").strip()
        if not zone:
            raise ValueError(f"Zone is required for node {node_id}")
        tags = role.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        roles.append({"id": node_id, "zone": zone, "capacity": _capacity(role.get("capacity")), "tags": list(tags)})
    return roles


async def get_health(client: GarageClient) -> Dict[str, Any]:
    return normalize_health(await client.call("GET", "/v2/GetClusterHealth"))


async def get_status(client: GarageClient) -> Dict[str, Any]:
    return normalize_status(await client.call("GET", "/v2/GetClusterStatus"))


async def get_layout(client: GarageClient) -> Dict[str, Any]:
    return normalize_layout(await client.call("GET", "/v2/GetClusterLayout"))


async def stage_layout(client: GarageClient, changes: Any) -> Any:
    roles = staged_changes_to_roles(changes)
    return await client.call("POST", "/v2/UpdateClusterLayout", {"roles": roles})


async def apply_layout(client: GarageClient, body: Any) -> Any:
    return await client.call("POST", "/v2/ApplyClusterLayout", body)


async def revert_layout(client: GarageClient, body: Any) -> Any:
    return await client.call("POST", "/v2/RevertClusterLayout", body)


async def connect_nodes(client: GarageClient, peers: Any) -> Any:
    """``peers`` is a list of ``node_id@address:port`` strings."""
    if not isinstance(peers, list) or not all(isinstance(p, str) and "@" in p for p in peers):
        raise ValueError("Expected a list of node_id@address:port strings")
    return await client.call("POST", "/v2/ConnectClusterNodes", peers)


def _port(value: Any, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port: {value!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Invalid port: {value!r}")
    return port


def _clean_host(ip: Any) -> str:
    if not ip or not isinstance(ip, str) or not ip.strip():
        raise ValueError("IP address is required")
    host = ip.strip()
    if any(ch in host for ch in "/@?# "):
        raise ValueError(f"Invalid host: {host!r}")
    return host


async def discover_node(
    client: GarageClient,
    ip: Any,
    admin_port: Any = None,
    rpc_port: Any = None,
) -> Dict[str, Any]:
    """Find the node ID of a fresh node via its own admin API, then connect it."""
    host = _clean_host(ip)
    aport = _port(admin_port, DEFAULT_ADMIN_PORT)
    rport = _port(rpc_port, DEFAULT_RPC_PORT)

    remote = await client.remote_status(host, aport)
    nodes = [n for n in remote.get("nodes") or [] if n.get("isUp")]
    node = next((n for n in nodes if host in str(n.get("addr") or "")), None) or next(iter(nodes), None)
    if not node or not node.get("id"):
        raise GarageApiError(502, "Could not determine node ID from remote status")

    address = f"{node['id']}@{host}:{rport}"
    result = await client.call("POST", "/v2/ConnectClusterNodes", [address])
    return {
        "nodeId": node["id"],
        "hostname": node.get("hostname", ""),
        "address": address,
        "connected": True,
        "result": result,
    }
