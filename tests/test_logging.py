"""
Structured logging and audit events.
"""

import json
import logging
import unittest

from genesistrust import Ed25519KeyStore, MissingSignature, TrustChainPipeline, WhitelistSet
from genesistrust.logging_config import StructuredFormatter, get_run_id, set_run_id
from genesistrust.signing import generate_key_pair

from commit_fixtures import Ledger


def events(logs):
    return [record.extra_fields for record in logs.records if hasattr(record, "extra_fields")]


class TestStructuredFormatter(unittest.TestCase):

    def test_one_json_object_per_record(self):
        set_run_id("run-123")
        record = logging.LogRecord("genesistrust.test", logging.WARNING, __file__, 10, "hello %s", ("world",), None)
        record.extra_fields = {"event_type": "TEST"}

        data = json.loads(StructuredFormatter().format(record))
        self.assertEqual(data["message"], "hello world")
        self.assertEqual(data["level"], "WARNING")
        self.assertEqual(data["run_id"], "run-123")
        self.assertEqual(data["event_type"], "TEST")

    def test_generated_run_id(self):
        run_id = set_run_id()
        self.assertTrue(run_id)
        self.assertEqual(get_run_id(), run_id)


class TestAuditTrail(unittest.TestCase):

    def setUp(self):
        self.key = generate_key_pair("K")
        self.keystore = Ed25519KeyStore.from_armored([self.key.public_armor()])
        self.ledger = Ledger()
        self.genesis = self.ledger.commit("genesis\n")
        for i in range(3):
            self.ledger.commit(f"change {i}\n", signer=self.key)

    def test_successful_run(self):
        with self.assertLogs("genesistrust.audit", level="INFO") as logs:
            TrustChainPipeline(self.ledger.source, self.keystore, WhitelistSet([self.genesis])).run()

        types = [e["event_type"] for e in events(logs)]
        self.assertEqual(types[0], "RUN_STARTED")
        self.assertEqual(types.count("COMMIT_WHITELISTED"), 1)
        self.assertEqual(types.count("COMMIT_VERIFIED"), 3)
        self.assertEqual(types.count("KEY_EXPORTED"), 1)
        self.assertEqual(types[-1], "DOCUMENT_BUILT")

    def test_aborted_run(self):
        with self.assertLogs("genesistrust.audit", level="INFO") as logs:
            with self.assertRaises(MissingSignature):
                TrustChainPipeline(self.ledger.source, self.keystore).run()

        last = events(logs)[-1]
        self.assertEqual(last["event_type"], "RUN_ABORTED")
        self.assertEqual(last["kind"], "MissingSignature")
        self.assertEqual(last["commit"], self.genesis)

    def test_worker_threads_carry_run_id(self):
        run_id = set_run_id("parallel-run")
        with self.assertLogs("genesistrust.audit", level="INFO") as logs:
            TrustChainPipeline(
                self.ledger.source, self.keystore, WhitelistSet([self.genesis]), workers=3
            ).run()

        verified = [e for e in events(logs) if e["event_type"] == "COMMIT_VERIFIED"]
        self.assertEqual(len(verified), 3)
        self.assertTrue(all(e["run_id"] == run_id for e in verified))


if __name__ == '__main__':
    unittest.main()
