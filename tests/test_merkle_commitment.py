from __future__ import annotations

import random

import pytest
from eth_utils import decode_hex, encode_hex, keccak

from ytrewards.ledger.allocator import DistributionLeaf
from ytrewards.merkle import (
    EMPTY_ROOT,
    MerkleTree,
    commit_distribution,
    hash_pair,
    leaf_hash,
    process_proof,
    verify_proof,
)
from ytrewards.testing.events import ALICE, BOB, CAROL, DAVE


def _leaves(n: int):
    return [DistributionLeaf(address="0x" + f"{i + 1:040x}", amount=(i + 1) * 1_000) for i in range(n)]


def _assert_round_trip(commitment) -> None:
    for addr, claim in commitment.proofs.items():
        assert verify_proof(commitment.root, addr, claim.amount, claim.proof), addr


def test_leaf_hash_is_packed_address_and_uint256() -> None:
    amount = 123456789
    expected = keccak(bytes.fromhex(ALICE[2:]) + amount.to_bytes(32, "big"))
    assert leaf_hash(ALICE, amount) == expected
    assert leaf_hash(ALICE.lower(), amount) == expected


def test_hash_pair_is_order_independent() -> None:
    a, b = keccak(b"a"), keccak(b"b")
    assert hash_pair(a, b) == hash_pair(b, a) == keccak(min(a, b) + max(a, b))


def test_empty_leaf_set_has_sentinel_root_and_no_proofs() -> None:
    c = commit_distribution([])
    assert c.root == encode_hex(EMPTY_ROOT) == "0x" + "00" * 32
    assert c.proofs == {}
    assert c.is_empty


def test_single_leaf_root_is_the_leaf_hash() -> None:
    c = commit_distribution([DistributionLeaf(address=BOB, amount=77)])
    assert decode_hex(c.root) == leaf_hash(BOB, 77)
    assert c.proofs[BOB].proof == []
    assert c.proofs[BOB].amount == 77
    _assert_round_trip(c)


def test_two_leaves_prove_each_other() -> None:
    c = commit_distribution([DistributionLeaf(ALICE, 1), DistributionLeaf(BOB, 2)])
    la, lb = leaf_hash(ALICE, 1), leaf_hash(BOB, 2)
    assert decode_hex(c.root) == hash_pair(la, lb)
    assert c.proofs[ALICE].proof == [encode_hex(lb)]
    assert c.proofs[BOB].proof == [encode_hex(la)]
    _assert_round_trip(c)


def test_odd_leaf_count_promotes_unpaired_node() -> None:
    c = commit_distribution([DistributionLeaf(ALICE, 1), DistributionLeaf(BOB, 2), DistributionLeaf(CAROL, 3)])
    _assert_round_trip(c)
    lengths = sorted(len(p.proof) for p in c.proofs.values())
    assert lengths == [1, 2, 2]


@pytest.mark.parametrize("n", [4, 5, 7, 16, 33])
def test_round_trip_for_larger_trees(n: int) -> None:
    _assert_round_trip(commit_distribution(_leaves(n)))


def test_root_and_proofs_do_not_depend_on_leaf_order() -> None:
    leaves = _leaves(11)
    c1 = commit_distribution(leaves)
    shuffled = list(leaves)
    random.Random(7).shuffle(shuffled)
    c2 = commit_distribution(shuffled)
    assert c1.root == c2.root
    assert c1.proofs == c2.proofs


def test_tampered_claims_do_not_verify() -> None:
    c = commit_distribution([DistributionLeaf(ALICE, 10), DistributionLeaf(BOB, 20), DistributionLeaf(CAROL, 30)])
    p = c.proofs[ALICE]
    assert not verify_proof(c.root, ALICE, 11, p.proof)
    assert not verify_proof(c.root, DAVE, 10, p.proof)
    assert not verify_proof(c.root, ALICE, 10, p.proof[:-1])
    assert not verify_proof(c.root, ALICE, 10, ["0xnothex"])


def test_duplicate_address_is_rejected() -> None:
    with pytest.raises(ValueError):
        commit_distribution([DistributionLeaf(ALICE, 1), DistributionLeaf(ALICE.lower(), 2)])


def test_tree_proof_matches_process_proof() -> None:
    hashes = [keccak(bytes([i])) for i in range(6)]
    tree = MerkleTree(hashes)
    for h in hashes:
        assert process_proof(h, tree.proof(h)) == tree.root
    with pytest.raises(KeyError):
        tree.proof(keccak(b"missing"))
