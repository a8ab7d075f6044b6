import unittest

from frostdkg import G, KeygenCoordinator, MemoryStore, codec
from frostdkg.errors import (
    IncompleteRound,
    InvalidParameters,
    InvalidProof,
    InvalidShare,
    StateNotFound,
    StorageError,
)
from frostdkg.primitives import scalar_from_hex, scalar_to_hex
from frostdkg.store import keygen_key


class Tests(unittest.TestCase):
    def setUp(self):
        self.indexes = (1, 2, 3)
        self.stores = {index: MemoryStore() for index in self.indexes}
        self.parties = {
            index: KeygenCoordinator(self.stores[index]) for index in self.indexes
        }

    def round1(self):
        return {index: self.parties[index].round1(2, 3, index) for index in self.indexes}

    def round2(self, round1_messages):
        batch = codec.join(round1_messages.values())
        return {index: self.parties[index].round2(index, batch) for index in self.indexes}

    def finalize(self, round2_messages):
        batch = codec.join(round2_messages.values())
        return {index: self.parties[index].finalize(index, batch) for index in self.indexes}

    def test_keygen(self):
        # Round 1
        round1_messages = self.round1()
        for index, message in round1_messages.items():
            self.assertEqual(message.party_index, index)
            self.assertEqual(len(message.commitments), 2)

        # Round 2
        round2_messages = self.round2(round1_messages)
        for message in round2_messages.values():
            self.assertEqual([s.to_index for s in message.shares], [1, 2, 3])

        # Finalize
        packages = self.finalize(round2_messages)
        public_keys = {p.public_key_hex() for p in packages.values()}
        self.assertEqual(len(public_keys), 1)
        self.assertEqual(len(public_keys.pop()), 64)

        for index, package in packages.items():
            self.assertEqual(package.threshold, 2)
            self.assertEqual(package.n_parties, 3)
            self.assertEqual(package.group_commitments[0], package.public_key)
            self.assertEqual(package.verification_share, package.secret_share * G)
            self.assertEqual(
                self.parties[index].load_key_package(index), package
            )

        results = [p.public_message() for p in packages.values()]
        self.assertEqual(len({r.public_key for r in results}), 1)
        self.assertEqual(len({r.verification_share for r in results}), 3)

    def test_one_of_one(self):
        store = MemoryStore()
        party = KeygenCoordinator(store)
        round1 = party.round1(1, 1, 1)
        round2 = party.round2(1, [round1])
        package = party.finalize(1, [round2])
        self.assertEqual(package.public_key, package.secret_share * G)

    def test_polynomial_erased_after_finalize(self):
        self.finalize(self.round2(self.round1()))
        for index in self.indexes:
            store = self.stores[index]
            self.assertFalse(store.exists(keygen_key("default", index, "polynomial")))
            self.assertTrue(store.exists(keygen_key("default", index, "secret_share")))

    def test_round1_invalid_parameters(self):
        party = self.parties[1]
        for threshold, n_parties, my_index in (
            (0, 3, 1),
            (4, 3, 1),
            (2, 3, 0),
            (2, 3, 4),
            (2, 0, 1),
        ):
            with self.assertRaises(InvalidParameters):
                party.round1(threshold, n_parties, my_index)
        self.assertEqual(self.stores[1].keys(), [])

    def test_round1_too_many_parties(self):
        with self.assertRaises(InvalidParameters):
            self.parties[1].round1(1, 2**32, 1)
        self.assertEqual(self.stores[1].keys(), [])

    def test_round1_is_idempotent(self):
        first = self.parties[1].round1(2, 3, 1)
        self.assertEqual(self.parties[1].round1(2, 3, 1), first)
        with self.assertRaises(InvalidParameters):
            self.parties[1].round1(3, 3, 1)

    def test_round1_after_finalize(self):
        self.finalize(self.round2(self.round1()))
        with self.assertRaises(InvalidParameters):
            self.parties[1].round1(2, 3, 1)

    def test_round2_before_round1(self):
        with self.assertRaises(StateNotFound):
            self.parties[1].round2(1, "")

    def test_round2_missing_commitment(self):
        round1_messages = self.round1()
        del round1_messages[3]
        with self.assertRaises(IncompleteRound) as ctx:
            self.parties[1].round2(1, codec.join(round1_messages.values()))
        self.assertEqual(ctx.exception.missing, (3,))

    def test_round2_duplicates_are_ignored(self):
        round1_messages = self.round1()
        batch = codec.join(round1_messages.values())
        message = self.parties[1].round2(1, batch + " " + batch)
        self.assertEqual(len(message.shares), 3)

    def test_round2_tampered_commitment(self):
        round1_messages = self.round1()
        tampered = round1_messages[2].model_dump()
        tampered["commitments"][1] = (5 * G).to_hex()
        batch = [round1_messages[1], tampered, round1_messages[3]]
        with self.assertRaises(InvalidProof) as ctx:
            self.parties[1].round2(1, batch)
        self.assertEqual(ctx.exception.party_index, 2)

    def test_round2_tampered_parameters(self):
        round1_messages = self.round1()
        tampered = round1_messages[3].model_dump()
        tampered["threshold"] = 3
        batch = [round1_messages[1], round1_messages[2], tampered]
        with self.assertRaises(InvalidProof) as ctx:
            self.parties[1].round2(1, batch)
        self.assertEqual(ctx.exception.party_index, 3)

    def test_round2_undecodable_commitment(self):
        round1_messages = self.round1()
        tampered = round1_messages[2].model_dump()
        tampered["commitments"][0] = "02" + "00" * 31
        batch = [round1_messages[1], tampered, round1_messages[3]]
        with self.assertRaises(InvalidProof) as ctx:
            self.parties[1].round2(1, batch)
        self.assertEqual(ctx.exception.party_index, 2)

    def test_round2_inconsistent_parameters(self):
        round1_messages = self.round1()
        # Party 3 honestly committed to a 3-of-3 key
        other = KeygenCoordinator(MemoryStore()).round1(3, 3, 3)
        batch = [round1_messages[1], round1_messages[2], other]
        with self.assertRaises(InvalidParameters) as ctx:
            self.parties[1].round2(1, batch)
        self.assertEqual(ctx.exception.party_index, 3)

    def test_round2_foreign_own_commitment(self):
        round1_messages = self.round1()
        replacement = KeygenCoordinator(MemoryStore()).round1(2, 3, 1)
        batch = [replacement, round1_messages[2], round1_messages[3]]
        with self.assertRaises(InvalidParameters):
            self.parties[1].round2(1, batch)

    def test_finalize_before_round2(self):
        self.round1()
        with self.assertRaises(StateNotFound):
            self.parties[1].finalize(1, "")

    def test_finalize_tampered_share(self):
        round2_messages = self.round2(self.round1())
        tampered = round2_messages[2].model_dump()
        share = tampered["shares"][0]
        self.assertEqual(share["to_index"], 1)
        share["share"] = scalar_to_hex(scalar_from_hex(share["share"]) + 1)

        batch = [round2_messages[1], tampered, round2_messages[3]]
        with self.assertRaises(InvalidShare) as ctx:
            self.parties[1].finalize(1, batch)
        self.assertEqual(ctx.exception.party_index, 2)

        # Party 3 never sees the bad share
        self.parties[3].finalize(3, batch)

    def test_finalize_missing_share(self):
        round2_messages = self.round2(self.round1())
        del round2_messages[2]
        with self.assertRaises(IncompleteRound) as ctx:
            self.parties[1].finalize(1, codec.join(round2_messages.values()))
        self.assertEqual(ctx.exception.missing, (2,))

    def test_corrupt_polynomial(self):
        store = self.stores[1]
        store.write(keygen_key("default", 1, "polynomial"), b'{"threshold": 2}')
        with self.assertRaises(StorageError):
            self.parties[1].round2(1, "")
        with self.assertRaises(StorageError):
            self.parties[1].round1(2, 3, 1)

        store.write(keygen_key("default", 1, "polynomial"), b'{"party_index": 1}')
        with self.assertRaises(StorageError) as ctx:
            self.parties[1].round2(1, "")
        self.assertNotIsInstance(ctx.exception, StateNotFound)

    def test_corrupt_commitments(self):
        self.stores[1].write_json(
            keygen_key("default", 1, "commitments"),
            {"threshold": 2, "n_parties": 3, "commitments": ["not", "a", "mapping"]},
        )
        with self.assertRaises(StorageError):
            self.parties[1].finalize(1, "")

    def test_corrupt_key_package(self):
        self.stores[1].write(keygen_key("default", 1, "secret_share"), b'{"party_index": 1}')
        with self.assertRaises(StorageError):
            self.parties[1].load_key_package(1)
        with self.assertRaises(StorageError):
            self.parties[1].finalize(1, "")

    def test_finalize_is_idempotent(self):
        packages = self.finalize(self.round2(self.round1()))
        self.assertEqual(self.parties[1].finalize(1, ""), packages[1])

    def test_separate_keys_share_a_store(self):
        store = MemoryStore()
        first = KeygenCoordinator(store, "first")
        second = KeygenCoordinator(store, "second")
        a = first.round1(1, 1, 1)
        b = second.round1(1, 1, 1)
        self.assertNotEqual(a.commitments, b.commitments)


if __name__ == "__main__":
    unittest.main()
