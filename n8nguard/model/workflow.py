# n8nguard/model/workflow.py
"""
In-memory workflow graph shared by the validator and the diff engine.

The graph wraps the caller's JSON dict instead of converting it into a fixed
schema, so unknown keys survive a load/mutate/dump round trip untouched.
Connections are addressed by node *name*:

    connections[<source name>][<output channel>][<output index>] = [
        {"node": <target name>, "type": <input channel>, "index": <input index>},
        ...
    ]
"""
from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, Iterator, List, NamedTuple, Optional

import networkx as nx

MAIN = "main"
ERROR_CHANNEL = "error"
CONTINUE_ERROR_OUTPUT = "continueErrorOutput"
ON_ERROR_VALUES = ("stopWorkflow", "continueRegularOutput", "continueErrorOutput")


class Connection(NamedTuple):
    source: str
    source_output: str
    source_index: int
    target: str
    target_input: str
    target_index: int

    def target_entry(self) -> Dict[str, Any]:
        return {"node": self.target, "type": self.target_input, "index": self.target_index}


class WorkflowGraph:
    def __init__(self, data: Dict[str, Any]):
        self.data = data

    @classmethod
    def from_dict(cls, workflow: Dict[str, Any], copy_data: bool = True) -> "WorkflowGraph":
        return cls(copy.deepcopy(workflow) if copy_data else workflow)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.data)

    # ---------- Workflow-level fields ----------

    @property
    def name(self) -> Optional[str]:
        return self.data.get("name")

    @name.setter
    def name(self, value: str) -> None:
        self.data["name"] = value

    @property
    def nodes(self) -> List[Dict[str, Any]]:
        nodes = self.data.get("nodes")
        return nodes if isinstance(nodes, list) else []

    @property
    def connections(self) -> Dict[str, Any]:
        conns = self.data.get("connections")
        return conns if isinstance(conns, dict) else {}

    @property
    def settings(self) -> Dict[str, Any]:
        if not isinstance(self.data.get("settings"), dict):
            self.data["settings"] = {}
        return self.data["settings"]

    @property
    def tags(self) -> List[Any]:
        if not isinstance(self.data.get("tags"), list):
            self.data["tags"] = []
        return self.data["tags"]

    def _mutable_nodes(self) -> List[Dict[str, Any]]:
        if not isinstance(self.data.get("nodes"), list):
            self.data["nodes"] = []
        return self.data["nodes"]

    def _mutable_connections(self) -> Dict[str, Any]:
        if not isinstance(self.data.get("connections"), dict):
            self.data["connections"] = {}
        return self.data["connections"]

    # ---------- Node lookup ----------

    def iter_nodes(self) -> Iterator[Dict[str, Any]]:
        """Well-formed node entries only (dicts)."""
        for n in self.nodes:
            if isinstance(n, dict):
                yield n

    def node_names(self) -> List[str]:
        return [n["name"] for n in self.iter_nodes() if isinstance(n.get("name"), str)]

    def get_node(self, name: str) -> Optional[Dict[str, Any]]:
        for n in self.iter_nodes():
            if n.get("name") == name:
                return n
        return None

    def get_node_by_id(self, node_id: Any) -> Optional[Dict[str, Any]]:
        if node_id is None:
            return None
        for n in self.iter_nodes():
            if n.get("id") is not None and str(n.get("id")) == str(node_id):
                return n
        return None

    def has_node(self, name: str) -> bool:
        return self.get_node(name) is not None

    def find_node(self, node_id: Optional[str] = None, node_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Resolve a node reference: id first, then name. An id that matches
        nothing is retried as a name, since callers often mix the two up.
        """
        if node_id:
            node = self.get_node_by_id(node_id)
            if node is not None:
                return node
        if node_name:
            node = self.get_node(node_name)
            if node is not None:
                return node
        if node_id and not node_name:
            return self.get_node(node_id)
        return None

    def add_node(self, node: Dict[str, Any]) -> None:
        self._mutable_nodes().append(node)

    def is_disabled(self, name: str) -> bool:
        node = self.get_node(name)
        return bool(node and node.get("disabled") is True)

    # ---------- Connections ----------

    def outputs(self, source: str, channel: str = MAIN) -> List[Any]:
        by_channel = self.connections.get(source)
        if not isinstance(by_channel, dict):
            return []
        outs = by_channel.get(channel)
        return outs if isinstance(outs, list) else []

    def targets_at(self, source: str, channel: str, index: int) -> List[Dict[str, Any]]:
        outs = self.outputs(source, channel)
        if index >= len(outs) or not isinstance(outs[index], list):
            return []
        return [t for t in outs[index] if isinstance(t, dict)]

    def iter_connections(self, channels: Optional[Iterable[str]] = None) -> Iterator[Connection]:
        """
        Yield every well-formed edge. Malformed entries (non-list outputs,
        targets without a string 'node') are skipped here; the validator
        reports them separately.
        """
        wanted = set(channels) if channels is not None else None
        for source, by_channel in self.connections.items():
            if not isinstance(by_channel, dict):
                continue
            for channel, outs in by_channel.items():
                if wanted is not None and channel not in wanted:
                    continue
                if not isinstance(outs, list):
                    continue
                for out_index, targets in enumerate(outs):
                    if not isinstance(targets, list):
                        continue
                    for t in targets:
                        if not isinstance(t, dict) or not isinstance(t.get("node"), str):
                            continue
                        idx = t.get("index", 0)
                        yield Connection(
                            source=source,
                            source_output=channel,
                            source_index=out_index,
                            target=t["node"],
                            target_input=t.get("type") or MAIN,
                            target_index=idx if isinstance(idx, int) else 0,
                        )

    def find_connections(
        self,
        source: str,
        target: str,
        source_output: Optional[str] = None,
        source_index: Optional[int] = None,
    ) -> List[Connection]:
        return [
            c for c in self.iter_connections([source_output] if source_output else None)
            if c.source == source
            and c.target == target
            and (source_index is None or c.source_index == source_index)
        ]

    @staticmethod
    def _is_entry(t: Any, conn: Connection) -> bool:
        return (
            isinstance(t, dict)
            and t.get("node") == conn.target
            and (t.get("type") or MAIN) == conn.target_input
            and t.get("index", 0) == conn.target_index
        )

    def has_connection(self, conn: Connection) -> bool:
        return any(
            self._is_entry(t, conn)
            for t in self.targets_at(conn.source, conn.source_output, conn.source_index)
        )

    def add_connection(self, conn: Connection) -> bool:
        """Add an edge; returns False when the identical edge already exists.
        Raises ValueError when the stored container for the source is malformed.
        """
        if self.has_connection(conn):
            return False
        conns = self._mutable_connections()
        by_channel = conns.setdefault(conn.source, {})
        if not isinstance(by_channel, dict):
            raise ValueError(f'connections of "{conn.source}" must be an object')
        outs = by_channel.setdefault(conn.source_output, [])
        if not isinstance(outs, list):
            raise ValueError(f'connections of "{conn.source}" output "{conn.source_output}" must be an array')
        while len(outs) <= conn.source_index:
            outs.append([])
        if not isinstance(outs[conn.source_index], list):
            outs[conn.source_index] = []
        outs[conn.source_index].append(conn.target_entry())
        return True

    def remove_connection(self, conn: Connection) -> bool:
        """Remove exactly one edge; False when it does not exist."""
        outs = self.outputs(conn.source, conn.source_output)
        if conn.source_index >= len(outs) or not isinstance(outs[conn.source_index], list):
            return False
        targets = outs[conn.source_index]
        for i, t in enumerate(targets):
            if self._is_entry(t, conn):
                del targets[i]
                self._prune(conn.source)
                return True
        return False

    def remove_connections(
        self,
        source: str,
        target: str,
        source_output: Optional[str] = None,
        source_index: Optional[int] = None,
    ) -> int:
        """Remove edges source -> target (optionally one channel/index). Returns count removed."""
        by_channel = self.connections.get(source)
        if not isinstance(by_channel, dict):
            return 0
        removed = 0
        for channel, outs in by_channel.items():
            if source_output is not None and channel != source_output:
                continue
            if not isinstance(outs, list):
                continue
            for i, targets in enumerate(outs):
                if source_index is not None and i != source_index:
                    continue
                if not isinstance(targets, list):
                    continue
                kept = [t for t in targets if not (isinstance(t, dict) and t.get("node") == target)]
                removed += len(targets) - len(kept)
                outs[i] = kept
        self._prune(source)
        return removed

    def remove_node(self, name: str) -> int:
        """Drop the node and every edge from or to it. Returns edges removed."""
        nodes = self._mutable_nodes()
        self.data["nodes"] = [n for n in nodes if not (isinstance(n, dict) and n.get("name") == name)]

        conns = self._mutable_connections()
        removed = 0
        outgoing = conns.pop(name, None)
        if isinstance(outgoing, dict):
            removed += sum(
                len(targets)
                for outs in outgoing.values() if isinstance(outs, list)
                for targets in outs if isinstance(targets, list)
            )
        for source in list(conns):
            removed += self.remove_connections(source, name)
        return removed

    def rename_node(self, old: str, new: str) -> None:
        """Rename a node and rewrite every connection that references it."""
        node = self.get_node(old)
        if node is None:
            return
        node["name"] = new
        conns = self._mutable_connections()
        if old in conns:
            # keep key order stable
            self.data["connections"] = conns = {
                (new if k == old else k): v for k, v in conns.items()
            }
        for by_channel in conns.values():
            if not isinstance(by_channel, dict):
                continue
            for outs in by_channel.values():
                if not isinstance(outs, list):
                    continue
                for targets in outs:
                    if not isinstance(targets, list):
                        continue
                    for t in targets:
                        if isinstance(t, dict) and t.get("node") == old:
                            t["node"] = new

    def _prune(self, source: str) -> None:
        """
        Drop trailing empty outputs, then empty channels and sources.
        Inner empty outputs are kept: they hold the position of later indices
        (an error output at main[1] must not slide down to main[0]).
        """
        conns = self.connections
        by_channel = conns.get(source)
        if not isinstance(by_channel, dict):
            return
        for channel in list(by_channel):
            outs = by_channel[channel]
            if not isinstance(outs, list):
                continue
            while outs and isinstance(outs[-1], list) and not outs[-1]:
                outs.pop()
            if not outs:
                del by_channel[channel]
        if not by_channel:
            del conns[source]

    # ---------- Error outputs / graph views ----------

    def is_error_output(self, source: str, channel: str, index: int) -> bool:
        if channel == ERROR_CHANNEL:
            return True
        node = self.get_node(source)
        return (
            channel == MAIN
            and index == 1
            and node is not None
            and node.get("onError") == CONTINUE_ERROR_OUTPUT
        )

    def success_digraph(self) -> nx.DiGraph:
        """
        DiGraph over node names with success edges only: the 'main' channel,
        minus the error output of nodes routing failures to main[1].
        Edges to or from unknown names are left out.
        """
        G = nx.DiGraph()
        names = self.node_names()
        G.add_nodes_from(names)
        known = set(names)
        for c in self.iter_connections([MAIN]):
            if c.source not in known or c.target not in known:
                continue
            if self.is_error_output(c.source, c.source_output, c.source_index):
                continue
            G.add_edge(c.source, c.target)
        return G
