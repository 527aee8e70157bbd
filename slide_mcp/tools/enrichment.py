"""Derived fields attached to API payloads: VNC viewer links, WireGuard configs, RDP bookmarks."""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

VNC_VIEWER_BASE = "https://slide.recipes/mcpTools/vncViewer.php"

ALL_TRAFFIC = "0.0.0.0/0, ::/0"


def vnc_viewer_url(virt_id: str, websocket_uri: str, vnc_password: str) -> str:
    password = base64.b64encode(vnc_password.encode("utf-8")).decode("ascii")
    return f"{VNC_VIEWER_BASE}?id={virt_id}&ws={quote_plus(websocket_uri)}&password={password}&encoding=base64"


def vm_viewer_url(vm: Dict[str, Any]) -> Optional[str]:
    """Viewer URL for the first VNC entry that exposes a websocket URI."""
    for entry in vm.get("vnc") or []:
        if not isinstance(entry, dict):
            continue
        websocket_uri = entry.get("websocket_uri")
        if websocket_uri is not None:
            return vnc_viewer_url(
                str(vm.get("virt_id", "")),
                websocket_uri,
                vm.get("vnc_password") or "",
            )
    return None


def join_networks(networks: Optional[List[str]], default_network: Optional[str]) -> str:
    if networks:
        return ", ".join(networks)
    if default_network:
        return default_network
    return ALL_TRAFFIC


def wireguard_config(peer: Dict[str, Any], server_public_key: str, network_prefix: Optional[str]) -> str:
    return (
        "[Interface]\n"
        f"PrivateKey = {peer.get('wg_private_key') or ''}\n"
        f"Address = {peer.get('wg_address') or ''}\n"
        "\n"
        "[Peer]\n"
        f"PublicKey = {server_public_key or ''}\n"
        f"Endpoint = {peer.get('wg_endpoint') or ''}\n"
        f"AllowedIPs = {join_networks(peer.get('remote_networks'), network_prefix)}\n"
        "PersistentKeepalive = 25\n"
    )


def attach_wireguard_configs(network: Dict[str, Any]) -> Dict[str, Any]:
    """Give every peer of ``network`` a ready-to-import ``_wireguard_config``."""
    peers = network.get("wg_peers")
    if not peers:
        return network
    enriched = []
    for peer in peers:
        if isinstance(peer, dict):
            peer = dict(peer)
            peer["_wireguard_config"] = wireguard_config(
                peer, network.get("wg_public_key") or "", network.get("wg_prefix")
            )
        enriched.append(peer)
    network["wg_peers"] = enriched
    return network


RDP_SETTINGS = (
    "screen mode id:i:2",
    "use multimon:i:0",
    "desktopwidth:i:1920",
    "desktopheight:i:1080",
    "session bpp:i:32",
    "compression:i:1",
    "keyboardhook:i:2",
    "audiomode:i:0",
    "redirectclipboard:i:1",
    "redirectprinters:i:0",
    "redirectdrives:i:0",
    "autoreconnection enabled:i:1",
    "authentication level:i:2",
    "prompt for credentials:i:1",
    "negotiate security layer:i:1",
)


def rdp_bookmark(host: str, port: Optional[int] = None) -> str:
    address = host if not port else f"{host}:{port}"
    lines = [f"full address:s:{address}", *RDP_SETTINGS]
    return "\r\n".join(lines) + "\r\n"
