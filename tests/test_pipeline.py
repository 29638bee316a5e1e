"""
Trust-chain pipeline behaviour.

Covers the fail-fast contract, exact whitelist matching, completeness,
determinism and key deduplication, sequentially and with a thread pool.
"""

import json
import threading
import time
import unittest

from genesistrust import (
    CommitWalker,
    Ed25519KeyStore,
    FailureKind,
    InvalidSignature,
    KeyExportFailure,
    KeyExtractor,
    KeyringFailure,
    KeyStoreError,
    MissingSignature,
    RepoAccessFailure,
    RunCancelled,
    SignatureVerifier,
    TrustChainPipeline,
    TrustState,
    UnknownKeyId,
    WhitelistSet,
    build_trust_document,
    reverify_document,
)
from genesistrust.signing import generate_key_pair

from commit_fixtures import Ledger, embed_signature, make_commit


class CountingKeyStore(Ed25519KeyStore):
    """Counts export calls."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.exports = []
        self._export_lock = threading.Lock()

    def export(self, key_id):
        with self._export_lock:
            self.exports.append(key_id)
        return super().export(key_id)


class ForgetfulKeyStore(Ed25519KeyStore):
    """Verifies signatures but cannot export any key."""

    def export(self, key_id):
        return None


class BrokenExportKeyStore(Ed25519KeyStore):
    def export(self, key_id):
        raise KeyStoreError("keyring locked")


class UnavailableKeyStore(Ed25519KeyStore):
    def verify(self, payload, signature):
        raise KeyStoreError("gpg binary not found: gpg")


class StalledKeyStore(Ed25519KeyStore):
    """verify blocks until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.release = threading.Event()

    def verify(self, payload, signature):
        self.release.wait(10)
        return super().verify(payload, signature)


class FakeClock:
    def __init__(self, step):
        self.now = 0.0
        self.step = step

    def __call__(self):
        current = self.now
        self.now += self.step
        return current


class PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self.key = generate_key_pair("K")
        self.keystore = CountingKeyStore()
        self.keystore.add_public_key(self.key.public_armor())

    def run_pipeline(self, ledger, whitelist=None, workers=1, keystore=None):
        return TrustChainPipeline(
            ledger.source,
            keystore or self.keystore,
            whitelist,
            workers=workers
        ).run()


class TestScenarios(PipelineTestCase):

    def test_two_signed_commits(self):
        ledger = Ledger()
        c1 = ledger.commit("genesis\n", signer=self.key)
        c2 = ledger.commit("second\n", signer=self.key)

        document = self.run_pipeline(ledger)
        data = json.loads(document.to_bytes())

        self.assertEqual(data["keys"], {"K": self.key.public_armor()})
        self.assertEqual([c["hash"] for c in data["commits"]], [c2, c1])
        self.assertEqual([c["trusted"] for c in data["commits"]], ["false", "false"])
        self.assertEqual(data["commits"][1]["object"], ledger.objects[c1].decode("utf-8"))

    def test_whitelisted_unsigned_genesis(self):
        ledger = Ledger()
        c1 = ledger.commit("genesis\n")

        document = self.run_pipeline(ledger, WhitelistSet([c1]))
        data = json.loads(document.to_bytes())

        self.assertEqual(data["keys"], {})
        self.assertEqual(data["commits"][0]["hash"], c1)
        self.assertEqual(data["commits"][0]["trusted"], "true")
        self.assertEqual(self.keystore.exports, [])

    def test_unsigned_commit_aborts(self):
        ledger = Ledger()
        c1 = ledger.commit("genesis\n")
        ledger.commit("second\n", signer=self.key)

        with self.assertRaises(MissingSignature) as ctx:
            self.run_pipeline(ledger)

        self.assertEqual(ctx.exception.commit_hash, c1)
        self.assertEqual(ctx.exception.kind, FailureKind.MISSING_SIGNATURE)
        self.assertIn(c1, ctx.exception.diagnostic())
        self.assertIn("MissingSignature", ctx.exception.diagnostic())

    def test_bad_signature_aborts(self):
        ledger = Ledger()
        unsigned = make_commit("genesis\n")
        forged = embed_signature(unsigned, self.key.sign(b"something else"))
        c1 = ledger.commit("", raw=forged)

        with self.assertRaises(InvalidSignature) as ctx:
            self.run_pipeline(ledger)
        self.assertEqual(ctx.exception.commit_hash, c1)


class TestProperties(PipelineTestCase):

    def build_mixed_ledger(self):
        ledger = Ledger()
        genesis = ledger.commit("genesis\n")
        for i in range(5):
            ledger.commit(f"change {i}\n", signer=self.key)
        return ledger, genesis

    def test_exact_whitelist_match_only(self):
        ledger = Ledger()
        c1 = ledger.commit("genesis\n")

        # a prefix entry is malformed and ignored; a superstring is a different hash
        whitelist = WhitelistSet.parse(f"{c1[:12]}\n{c1 + 'ab' * 12}\n")

        with self.assertRaises(MissingSignature):
            self.run_pipeline(ledger, whitelist)

    def test_completeness(self):
        ledger, genesis = self.build_mixed_ledger()
        document = self.run_pipeline(ledger, WhitelistSet([genesis]))
        self.assertEqual(len(document.commits), len(ledger.source.list_history()))

    def test_determinism(self):
        ledger, genesis = self.build_mixed_ledger()
        first = self.run_pipeline(ledger, WhitelistSet([genesis])).to_bytes()
        second = self.run_pipeline(ledger, WhitelistSet([genesis])).to_bytes()
        self.assertEqual(first, second)

    def test_key_dedup(self):
        ledger, genesis = self.build_mixed_ledger()
        document = self.run_pipeline(ledger, WhitelistSet([genesis]))

        self.assertEqual(list(document.keys), ["K"])
        self.assertEqual(self.keystore.exports, ["K"])

    def test_keys_sorted_by_id(self):
        other = generate_key_pair("A")
        self.keystore.add_public_key(other.public_armor())
        ledger = Ledger()
        ledger.commit("one\n", signer=self.key)
        ledger.commit("two\n", signer=other)

        document = self.run_pipeline(ledger)
        self.assertEqual(list(json.loads(document.to_bytes())["keys"]), ["A", "K"])

    def test_trust_implies_provable(self):
        ledger, genesis = self.build_mixed_ledger()
        whitelist = WhitelistSet([genesis])
        document = self.run_pipeline(ledger, whitelist)

        self.assertTrue(reverify_document(document, whitelist).is_valid())

    def test_whitelisted_signed_commit_needs_no_key(self):
        ledger = Ledger()
        c1 = ledger.commit("genesis\n", signer=self.key)

        document = self.run_pipeline(ledger, WhitelistSet([c1]))
        self.assertEqual(document.keys, {})
        self.assertEqual(document.commits[0].trusted, "true")

    def test_empty_history(self):
        document = self.run_pipeline(Ledger())
        self.assertEqual(document.to_bytes(), b'{"commits":[],"keys":{}}\n')

    def test_convenience_function(self):
        ledger, genesis = self.build_mixed_ledger()
        document = build_trust_document(ledger.source, self.keystore, WhitelistSet([genesis]))
        self.assertEqual(len(document.commits), 6)


class TestKeyFailures(PipelineTestCase):

    def test_unknown_key_id(self):
        keystore = ForgetfulKeyStore()
        keystore.add_public_key(self.key.public_armor())
        ledger = Ledger()
        c1 = ledger.commit("genesis\n", signer=self.key)

        with self.assertRaises(UnknownKeyId) as ctx:
            self.run_pipeline(ledger, keystore=keystore)
        self.assertEqual(ctx.exception.key_id, "K")
        self.assertEqual(ctx.exception.commit_hash, c1)

    def test_export_failure(self):
        keystore = BrokenExportKeyStore()
        keystore.add_public_key(self.key.public_armor())
        ledger = Ledger()
        ledger.commit("genesis\n", signer=self.key)

        with self.assertRaises(KeyExportFailure) as ctx:
            self.run_pipeline(ledger, keystore=keystore)
        self.assertIn("keyring locked", ctx.exception.diagnostic())

    def test_signer_not_in_keyring(self):
        stranger = generate_key_pair("STRANGER")
        ledger = Ledger()
        ledger.commit("genesis\n", signer=stranger)

        with self.assertRaises(InvalidSignature):
            self.run_pipeline(ledger)

    def test_extractor_cache(self):
        extractor = KeyExtractor(self.keystore)
        self.assertEqual(extractor.resolve("K"), extractor.resolve("K"))
        self.assertEqual(self.keystore.exports, ["K"])

    def test_keyring_unavailable(self):
        ledger = Ledger()
        c1 = ledger.commit("genesis\n", signer=self.key)

        with self.assertRaises(KeyringFailure) as ctx:
            self.run_pipeline(ledger, keystore=UnavailableKeyStore())
        self.assertEqual(ctx.exception.commit_hash, c1)
        self.assertIn("KeyringFailure", ctx.exception.diagnostic())
        self.assertIn("gpg binary not found", ctx.exception.diagnostic())


class TestRepoFailures(PipelineTestCase):

    def test_object_hash_mismatch(self):
        ledger = Ledger()
        c1 = ledger.commit("genesis\n", signer=self.key)
        ledger.source.put(c1, ledger.objects[c1] + b"tampered\n")

        with self.assertRaises(RepoAccessFailure) as ctx:
            self.run_pipeline(ledger)
        self.assertEqual(ctx.exception.commit_hash, c1)

    def test_missing_object(self):
        ledger = Ledger()
        ledger.commit("genesis\n", signer=self.key)
        ledger.source._order.append("f" * 40)

        with self.assertRaises(RepoAccessFailure):
            self.run_pipeline(ledger)

    def test_malformed_hash_in_history(self):
        ledger = Ledger()
        ledger.source.put("not-a-hash", b"tree x\n\nmsg\n")

        with self.assertRaises(RepoAccessFailure):
            CommitWalker(ledger.source).list_history()

    def test_hash_with_trailing_newline_in_history(self):
        ledger = Ledger()
        c1 = ledger.commit("genesis\n")
        ledger.source.put(c1 + "\n", ledger.objects[c1])

        with self.assertRaises(RepoAccessFailure):
            CommitWalker(ledger.source).list_history()

    def test_corrupt_object_is_repo_failure(self):
        ledger = Ledger()
        c1 = ledger.commit("", raw=b" broken continuation\n\nmsg\n")

        with self.assertRaises(RepoAccessFailure) as ctx:
            self.run_pipeline(ledger)
        self.assertEqual(ctx.exception.commit_hash, c1)

    def test_corrupt_object_can_still_be_whitelisted(self):
        ledger = Ledger()
        c1 = ledger.commit("", raw=b" broken continuation\n\nmsg\n")
        document = self.run_pipeline(ledger, WhitelistSet([c1]))
        self.assertEqual(document.commits[0].hash, c1)


class TestVerifierStates(PipelineTestCase):

    def test_states(self):
        ledger = Ledger()
        c1 = ledger.commit("genesis\n")
        c2 = ledger.commit("signed\n", signer=self.key)
        c3 = ledger.commit("unsigned\n")
        verifier = SignatureVerifier(ledger.source, self.keystore, WhitelistSet([c1]))

        self.assertEqual(verifier.verify_commit(c1).trust, TrustState.WHITELISTED)

        verified = verifier.verify_commit(c2)
        self.assertEqual(verified.trust, TrustState.VERIFIED)
        self.assertEqual(verified.signer_key_id, "K")

        failed = verifier.verify_commit(c3)
        self.assertEqual(failed.trust, TrustState.FAILED)
        self.assertEqual(failed.failure, FailureKind.MISSING_SIGNATURE)
        self.assertIsNone(failed.signer_key_id)
        self.assertIsInstance(failed.to_error(), MissingSignature)

    def test_passed_record_has_no_error(self):
        ledger = Ledger()
        c1 = ledger.commit("signed\n", signer=self.key)
        record = SignatureVerifier(ledger.source, self.keystore).verify_commit(c1)
        with self.assertRaises(ValueError):
            record.to_error()


class TestConcurrency(PipelineTestCase):

    def build_ledger_with_failures(self):
        ledger = Ledger()
        for i in range(6):
            ledger.commit(f"signed {i}\n", signer=self.key)
        early = ledger.commit("unsigned early\n")
        for i in range(6):
            ledger.commit(f"signed later {i}\n", signer=self.key)
        late = ledger.commit("unsigned late\n")
        return ledger, early, late

    def test_parallel_matches_sequential(self):
        ledger = Ledger()
        ledger.commit("genesis\n")
        for i in range(20):
            ledger.commit(f"change {i}\n", signer=self.key)
        whitelist = WhitelistSet([ledger.hashes[0]])

        sequential = self.run_pipeline(ledger, whitelist).to_bytes()
        parallel = self.run_pipeline(ledger, whitelist, workers=4).to_bytes()
        self.assertEqual(sequential, parallel)

    def test_first_failure_in_history_order_reported(self):
        ledger, early, late = self.build_ledger_with_failures()

        for workers in (1, 4):
            with self.assertRaises(MissingSignature) as ctx:
                self.run_pipeline(ledger, workers=workers)
            # history is most recent first, so the late commit comes first
            self.assertEqual(ctx.exception.commit_hash, late)

    def test_invalid_worker_count(self):
        with self.assertRaises(ValueError):
            TrustChainPipeline(Ledger().source, self.keystore, workers=0)


class TestCancellation(PipelineTestCase):

    def test_timeout_aborts(self):
        ledger = Ledger()
        ledger.commit("one\n", signer=self.key)
        ledger.commit("two\n", signer=self.key)
        history = ledger.source.list_history()

        pipeline = TrustChainPipeline(
            ledger.source, self.keystore, timeout=1.0, clock=FakeClock(step=0.6)
        )
        with self.assertRaises(RunCancelled) as ctx:
            pipeline.run()
        self.assertEqual(ctx.exception.commit_hash, history[1])
        self.assertEqual(ctx.exception.kind, FailureKind.CANCELLED)

    def test_timeout_interrupts_stalled_verification(self):
        keystore = StalledKeyStore()
        keystore.add_public_key(self.key.public_armor())
        self.addCleanup(keystore.release.set)
        ledger = Ledger()
        c1 = ledger.commit("one\n", signer=self.key)

        for workers in (1, 2):
            pipeline = TrustChainPipeline(ledger.source, keystore, workers=workers, timeout=0.2)
            started = time.monotonic()
            with self.assertRaises(RunCancelled) as ctx:
                pipeline.run()
            self.assertLess(time.monotonic() - started, 5)
            self.assertEqual(ctx.exception.commit_hash, c1)

    def test_cancel_before_run(self):
        ledger = Ledger()
        ledger.commit("one\n", signer=self.key)
        pipeline = TrustChainPipeline(ledger.source, self.keystore)
        pipeline.cancel()

        with self.assertRaises(RunCancelled):
            pipeline.run()

    def test_cancel_parallel(self):
        ledger = Ledger()
        for i in range(4):
            ledger.commit(f"{i}\n", signer=self.key)
        pipeline = TrustChainPipeline(ledger.source, self.keystore, workers=2)
        pipeline.cancel()

        with self.assertRaises(RunCancelled):
            pipeline.run()


if __name__ == '__main__':
    unittest.main()
