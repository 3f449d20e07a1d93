"""IPFS content identifiers for rendered handle images (Phase 2).

Reproduces the default UnixFS import used when handle images are pinned:
fixed-size chunks, raw leaves, a balanced DAG of dag-pb parents and CIDv1
rendered in base58btc. The same bytes always yield the same identifier.
"""

from __future__ import annotations

from dataclasses import dataclass

from multiformats import CID, multihash, varint

from .errors import InfrastructureError

CHUNK_SIZE = 262_144
MAX_CHILDREN_PER_NODE = 174
HASH_NAME = "sha2-256"
CID_BASE = "base58btc"
CODEC_RAW = "raw"
CODEC_DAG_PB = "dag-pb"
IPFS_SCHEME = "ipfs://"

_UNIXFS_TYPE_FILE = 2


@dataclass(frozen=True)
class _DagNode:
    cid: CID
    # Cumulative encoded size of the node and every block below it.
    dag_size: int
    # Number of file content bytes addressed by the node.
    file_size: int


def compute_cid(data: bytes) -> str:
    """Return the base58btc CIDv1 string of ``data`` as a UnixFS file."""
    try:
        root = _import_file(bytes(data))
    except (TypeError, ValueError, KeyError) as exc:
        raise InfrastructureError("CID_COMPUTE_FAILED", str(exc)[:256]) from exc
    return str(root.cid)


def ipfs_uri(cid: str) -> str:
    return f"{IPFS_SCHEME}{cid}"


def _import_file(data: bytes) -> _DagNode:
    chunks = [data[offset : offset + CHUNK_SIZE] for offset in range(0, len(data), CHUNK_SIZE)] or [b""]
    leaves = [_raw_leaf(chunk) for chunk in chunks]
    if len(leaves) == 1:
        return leaves[0]
    level = leaves
    while len(level) > 1:
        level = [
            _file_parent(level[start : start + MAX_CHILDREN_PER_NODE])
            for start in range(0, len(level), MAX_CHILDREN_PER_NODE)
        ]
    return level[0]


def _raw_leaf(chunk: bytes) -> _DagNode:
    digest = multihash.digest(chunk, HASH_NAME)
    return _DagNode(cid=CID(CID_BASE, 1, CODEC_RAW, digest), dag_size=len(chunk), file_size=len(chunk))


def _file_parent(children: list[_DagNode]) -> _DagNode:
    linked = [child for child in children if child.file_size > 0]
    file_size = sum(child.file_size for child in linked)
    unixfs = _field_varint(1, _UNIXFS_TYPE_FILE) + _field_varint(3, file_size)
    for child in linked:
        unixfs += _field_varint(4, child.file_size)

    block = b"".join(_field_bytes(2, _pb_link(child)) for child in linked) + _field_bytes(1, unixfs)
    digest = multihash.digest(block, HASH_NAME)
    return _DagNode(
        cid=CID(CID_BASE, 1, CODEC_DAG_PB, digest),
        dag_size=len(block) + sum(child.dag_size for child in linked),
        file_size=file_size,
    )


def _pb_link(child: _DagNode) -> bytes:
    # Hash, empty Name, Tsize in dag-pb field order.
    return _field_bytes(1, bytes(child.cid)) + _field_bytes(2, b"") + _field_varint(3, child.dag_size)


def _field_varint(number: int, value: int) -> bytes:
    return varint.encode(number << 3) + varint.encode(value)


def _field_bytes(number: int, payload: bytes) -> bytes:
    return varint.encode((number << 3) | 2) + varint.encode(len(payload)) + payload
