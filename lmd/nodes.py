"""Cluster management: node discovery and distribution of backends among nodes."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
import threading
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from lmd.logsetup import TRACE
from lmd.util import HTTP_CLIENT_TIMEOUT, WaitGroup, version, wait_timeout

logger = logging.getLogger(__name__)

_RE_NODE_ADDRESS = re.compile(r"^(https?)?(://)?(.*?)(:(\d+))?(/.*)?$")

DEFAULT_LOOP_INTERVAL = 10
DEFAULT_HEARTBEAT_TIMEOUT = 3


class NodeQueryError(RuntimeError):
    """Raised when a query to a partner node fails."""


@dataclass(eq=False)
class NodeAddress:
    """Address of a cluster node; the id is known once the node has answered."""

    ip: str = ""
    port: int = 0
    url: str = ""
    id: str = ""
    is_me: bool = False

    def __str__(self) -> str:
        addr = f"{self.ip}:{self.port}"
        if self.id:
            return f"[{self.id}] {addr}"
        return addr


def format_node_list(nodes: Iterable[NodeAddress]) -> str:
    """Return the sorted, comma separated addresses of the given nodes."""
    return ",".join(sorted(str(node) for node in nodes))


def _address_parts(address: str) -> tuple[str, ...]:
    match = _RE_NODE_ADDRESS.match(address)
    if match is None:
        return ("",) * 7
    return (match.group(0),) + tuple(group or "" for group in match.groups())


def parse_node_addresses(addresses: Iterable[str], listen: str) -> list[NodeAddress]:
    """Parse configured node addresses, completing them from the listen address.

    Raises ValueError if two addresses end up with the same url.
    """
    listen_parts = _address_parts(listen)
    result: list[NodeAddress] = []
    for address in addresses:
        parts = _address_parts(address)
        ip_address = parts[3]
        port = parts[5] or listen_parts[5]
        if parts[1] and parts[2]:
            url = address
        else:
            url = listen_parts[1] + listen_parts[2] + ip_address + ":" + port
        if not url.endswith("/"):
            url += "/"
        if any(other.url == url for other in result):
            raise ValueError(f"Duplicate node url: {url}")
        result.append(NodeAddress(ip=ip_address, port=int(port) if port else 0, url=url))
    return result


def assign_backends(backends: Sequence[str], online: Sequence[bool]) -> list[list[str]]:
    """Distribute backends over the online nodes, in order; one list per node."""
    available = sum(1 for flag in online if flag)
    assigned: list[list[str]] = [[] for _ in online]
    if available == 0:
        return assigned
    total = len(backends)
    if available >= total:
        per_node = 1
    else:
        per_node = total // available + (1 if total % available else 0)
    distributed = 0
    for idx, is_online in enumerate(online):
        if not is_online:
            continue
        chunk = backends[distributed : distributed + per_node]
        assigned[idx] = [backend for backend in chunk if backend != ""]
        distributed += per_node
    return assigned


def generate_uuid() -> str:
    """Return a random identifier of 16 bytes as upper case hex groups."""
    raw = os.urandom(16)
    groups = (raw[0:4], raw[4:6], raw[6:8], raw[8:10], raw[10:])
    return "-".join(group.hex().upper() for group in groups)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    if value is None:
        return []
    return [value]


def _noop(_backend: str) -> None:
    """Default peer callback doing nothing."""


class Nodes:
    """Cluster manager deciding which backends this node is responsible for."""

    def __init__(
        self,
        addresses: Iterable[str] = (),
        listen: str = "",
        backends: Iterable[str] = (),
        start_peer: Optional[Callable[[str], None]] = None,
        stop_peer: Optional[Callable[[str], None]] = None,
        build: str = "",
    ) -> None:
        self.node_addresses: list[NodeAddress] = parse_node_addresses(addresses, listen)
        self.backends: list[str] = list(backends)
        self.start_peer = start_peer or _noop
        self.stop_peer = stop_peer or _noop
        self.version_string = version(build)
        self.id = ""
        self.this_node: Optional[NodeAddress] = None
        self.online_nodes: list[NodeAddress] = []
        self.node_backends: dict[str, list[str]] = {}
        self.assigned_backends: list[str] = []
        self.sub_peers: dict[str, str] = {}
        self.heartbeat_timeout = 0
        self.loop_interval = 0
        self.http_timeout = HTTP_CLIENT_TIMEOUT
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def is_clustered(self) -> bool:
        """Return True if cluster mode is enabled."""
        return len(self.node_addresses) > 1

    def node(self, node_id: str) -> NodeAddress:
        """Return a copy of the node with the given id, or a bare address holding the id."""
        for other in self.node_addresses:
            if other.id and other.id == node_id:
                return dataclasses.replace(other)
        return NodeAddress(id=node_id)

    def initialize(self) -> None:
        """Generate this node's identifier and start peers or identify this node."""
        if self.loop_interval == 0:
            self.loop_interval = DEFAULT_LOOP_INTERVAL
        if self.heartbeat_timeout == 0:
            self.heartbeat_timeout = DEFAULT_HEARTBEAT_TIMEOUT
        self.id = f"{int(time.time())}:{generate_uuid()}"
        if not self.is_clustered():
            for backend in self.backends:
                self.start_peer(backend)
            return
        self.check_node_availability()

    def start(self) -> None:
        """Start the background loop pinging partner nodes; does nothing in single mode."""
        if not self.is_clustered():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="lmd-nodes", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background loop."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None

    def _loop(self) -> None:
        while not self._stop_event.wait(self.loop_interval):
            try:
                self.check_node_availability()
            except Exception:
                logger.exception("node availability check failed")
                return

    def check_node_availability(self) -> None:
        """Ping all nodes and redistribute backends if the set of online nodes changed.

        The first call also identifies this node among the configured addresses.
        """
        if not self.id:
            raise RuntimeError("not initialized")
        initializing = self.this_node is None
        collected_lock = threading.Lock()
        new_online: list[NodeAddress] = [] if initializing else [self.this_node]
        force = False
        group = WaitGroup()

        def ping(node: NodeAddress, request: dict[str, Any]) -> None:
            nonlocal force
            try:
                try:
                    response = self.send_query(node, "ping", request)
                except (NodeQueryError, ValueError) as exc:
                    logger.debug("node sendquery failed: %s", exc)
                    return
                logger.log(TRACE, "got response from %s", node)
                with self._lock:
                    is_online, redistribute = self.handle_ping_response(
                        node, response, initializing
                    )
                with collected_lock:
                    if redistribute:
                        force = True
                    if is_online:
                        new_online.append(node)
            finally:
                group.done()

        for node in self.node_addresses:
            if not initializing and node.is_me:
                continue
            with self._lock:
                request = {
                    "identifier": self.id,
                    "peers": ";".join(self.node_backends.get(node.id, [])),
                }
            logger.log(TRACE, "pinging node %s...", node)
            group.add(1)
            threading.Thread(target=ping, args=(node, request), daemon=True).start()

        if wait_timeout(group, self.heartbeat_timeout):
            logger.log(TRACE, "node timeout")
        if initializing and self.this_node is None:
            raise RuntimeError("timeout while initializing nodes (own ip missing from config?)")

        with collected_lock:
            current = list(new_online)
            redistribute = force
        if redistribute or format_node_list(self.online_nodes) != format_node_list(current):
            self.online_nodes = current
            self.redistribute()

    def online_indexes(self) -> tuple[int, list[bool]]:
        """Return the index of this node and which configured nodes are online."""
        online_urls = {node.url for node in self.online_nodes}
        own_index = -1
        online: list[bool] = []
        for idx, node in enumerate(self.node_addresses):
            if node.is_me:
                own_index = idx
            online.append(node.url in online_urls)
        return own_index, online

    def redistribute(self) -> tuple[list[str], list[str]]:
        """Assign backends to the online nodes; return the backends started and stopped here."""
        own_index, online = self.online_indexes()
        logger.info(
            "redistributing peers within cluster, %d/%d nodes online",
            sum(online),
            len(online),
        )
        if own_index < 0:
            raise RuntimeError("this node has not been identified")
        assigned = assign_backends(self.backends, online)
        self.node_backends = {
            node.id: assigned[idx]
            for idx, node in enumerate(self.node_addresses)
            if online[idx]
        }
        return self.update_backends(assigned[own_index], self.sub_peers)

    def update_backends(
        self, our_backends: Iterable[str], sub_peers: Mapping[str, str]
    ) -> tuple[list[str], list[str]]:
        """Take over the given backends plus their sub peers, starting and stopping peers.

        ``sub_peers`` maps a sub peer id to the id of its parent.
        Returns the lists of added and removed backends.
        """
        ours = list(our_backends)
        parents = set(ours)
        ours.extend(peer_id for peer_id, parent in sub_peers.items() if parent in parents)

        now = set(ours)
        before = set(self.assigned_backends)
        added = [b for b in self.backends if b in now and b not in before]
        removed = [b for b in self.backends if b in before and b not in now]

        self.assigned_backends = ours
        for backend in removed:
            self.stop_peer(backend)
        for backend in added:
            self.start_peer(backend)
        return added, removed

    def is_our_backend(self, backend: str) -> bool:
        """Return True if the backend is managed by this node."""
        if not self.is_clustered():
            return True
        return backend in self.assigned_backends

    def send_query(self, node: NodeAddress, name: str, parameters: Mapping[str, Any]) -> Any:
        """Call the api function ``name`` on a node and return the decoded answer."""
        if not node.url:
            raise ValueError(f"uninitialized node address provided to send_query {node.id}")
        payload = dict(parameters)
        payload["_name"] = name
        body = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            node.url + "query",
            data=body,
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        try:
            with urllib.request.urlopen(request, timeout=self.http_timeout) as response:
                status = response.status
                raw = response.read()
        except urllib.error.HTTPError as exc:
            status = exc.code
            with exc:
                raw = exc.read()
        except OSError as exc:
            logger.debug("error sending query (%s) to node (%s): %s", name, node, exc)
            raise NodeQueryError(f"httpclient: {exc}") from exc

        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.log(TRACE, "%s", exc)
            raise NodeQueryError(f"decoder: {exc}") from exc

        if status != 200:
            if isinstance(data, dict) and "error" in data:
                message = _text(data["error"])
            else:
                message = f"node request failed: {name} (code {status})"
            logger.log(TRACE, "%s", message)
            raise NodeQueryError(message)
        return data

    def handle_ping_response(
        self, node: NodeAddress, response: Any, initializing: bool
    ) -> tuple[bool, bool]:
        """Process a ping answer; return whether the node is online and a redistribution is forced."""
        if not isinstance(response, Mapping):
            return False, False
        force = False
        identifier = _text(response.get("identifier"))
        if not node.id:
            node.id = identifier
        elif node.id != identifier:
            logger.info("partner node %s restarted", node)
            self.node_backends.pop(node.id, None)
            node.id = identifier
            force = True

        mismatch = "version" not in response or _text(response["version"]) != self.version_string
        if mismatch:
            logger.debug("version mismatch with node %s, deactivating", node)
            force = True
            self.node_backends.pop(node.id, None)

        is_online = False
        if identifier == self.id:
            if initializing:
                self.this_node = node
                node.is_me = True
                is_online = True
                logger.debug("identified this node as %s", node)
        elif not mismatch:
            is_online = True
            logger.log(TRACE, "discovered partner node: %s", node)
            peers = response.get("peers")
            if peers is not None:
                self.node_backends[node.id] = [_text(peer) for peer in _as_list(peers)]
        return is_online, force