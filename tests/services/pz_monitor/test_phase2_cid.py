from __future__ import annotations

from multiformats import CID, multihash

from handle_monitor.pz_monitor.cid import CHUNK_SIZE, MAX_CHILDREN_PER_NODE, compute_cid, ipfs_uri

# UnixFS imports (raw leaves, balanced dag-pb, base58btc CIDv1) of fixed inputs.
EMPTY_FILE_CID = "zb2rhmy65F3REf8SZp7De11gxtECBGgUKaLdiDj7MCGCHxbDW"
TWO_CHUNK_CID = "zdj7WkkLVxxwkBGh2LwkRHCDQMTjKzCcMGhnBfzr76xLqFoS7"
TWO_LEVEL_CID = "zdj7WZXKbCtqPD11y4UWsJyVLChneTPb8111Gr8ZH8ZVTC7fg"


def test_small_file_is_a_single_raw_leaf() -> None:
    data = b"personalized handle image bytes"
    expected = CID("base58btc", 1, "raw", multihash.digest(data, "sha2-256"))
    assert compute_cid(data) == str(expected)
    assert compute_cid(data).startswith("z")


def test_cid_is_deterministic() -> None:
    data = bytes(range(256)) * 64
    assert compute_cid(data) == compute_cid(bytes(data))


def test_empty_file_hashes_empty_leaf() -> None:
    assert compute_cid(b"") == EMPTY_FILE_CID


def test_multi_chunk_file_has_dag_pb_root() -> None:
    data = b"\x07" * (CHUNK_SIZE + 1024)
    value = compute_cid(data)
    root = CID.decode(value)
    assert root.version == 1
    assert root.codec.name == "dag-pb"
    assert value != str(CID("base58btc", 1, "raw", multihash.digest(data, "sha2-256")))
    assert value == TWO_CHUNK_CID


def test_file_wider_than_one_node_adds_a_tree_level() -> None:
    data = b"\x07" * (CHUNK_SIZE * (MAX_CHILDREN_PER_NODE + 1))
    assert compute_cid(data) == TWO_LEVEL_CID


def test_one_byte_change_changes_cid() -> None:
    data = bytearray(b"\x00" * (CHUNK_SIZE * 2))
    original = compute_cid(bytes(data))
    data[-1] = 1
    assert compute_cid(bytes(data)) != original


def test_ipfs_uri() -> None:
    assert ipfs_uri("zb2rhk") == "ipfs://zb2rhk"
