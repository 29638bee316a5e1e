"""
genesistrust Trust-Chain Pipeline

    CommitWalker -> SignatureVerifier -> KeyExtractor -> DocumentBuilder

The pipeline is fail-fast and atomic: the first commit that is neither
whitelisted nor validly signed aborts the run, and no document exists
unless every commit resolved to Whitelisted or Verified.

With workers > 1, verifications run on a thread pool but results are
consumed in history order. The failure reported is therefore always the
first failing commit in history order, exactly as in a sequential run,
and all outstanding work is cancelled and discarded once it is found.

A timeout is enforced inside a single verification too, not only between
commits: the run aborts with RunCancelled as soon as the deadline passes
even if a git or gpg call is still running.
"""

import contextvars
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, List, Optional

from .document import DocumentBuilder, TrustDocument
from .errors import RunCancelled, TrustChainError
from .keys import KeyExtractor
from .keystore import KeyStore
from .logging_config import audit_log, get_run_id, set_run_id
from .repo_source import RepoSource
from .verifier import CommitRecord, SignatureVerifier
from .walker import CommitWalker
from .whitelist import WhitelistSet

logger = logging.getLogger(__name__)


class TrustChainPipeline:
    """
    Builds one trust document per run.

    Args:
        source: commit history backend
        keystore: keyring backend
        whitelist: pre-trusted hashes (default: empty)
        workers: verification threads; 1 means strictly sequential
        timeout: seconds before the run is cancelled (None = no limit)
    """

    def __init__(
        self,
        source: RepoSource,
        keystore: KeyStore,
        whitelist: Optional[WhitelistSet] = None,
        workers: int = 1,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.source = source
        self.keystore = keystore
        self.whitelist = whitelist or WhitelistSet.empty()
        self.workers = workers
        self.timeout = timeout
        self._clock = clock
        self._cancelled = threading.Event()
        self._deadline: Optional[float] = None

    def cancel(self) -> None:
        """Request cancellation; the run aborts at the next commit boundary."""
        self._cancelled.set()

    def run(self) -> TrustDocument:
        """
        Execute the pipeline.

        Raises:
            TrustChainError: any pipeline-fatal condition. No document is
                produced in that case.
        """
        if not get_run_id():
            set_run_id()
        self._deadline = self._clock() + self.timeout if self.timeout else None

        try:
            hashes = CommitWalker(self.source).list_history()
            audit_log.run_started(len(hashes), len(self.whitelist), self.workers)

            verifier = SignatureVerifier(self.source, self.keystore, self.whitelist)
            if self.workers == 1:
                records = self._verify_sequential(verifier, hashes)
            else:
                records = self._verify_parallel(verifier, hashes)

            self._check_cancelled()
            keys = KeyExtractor(self.keystore).extract(records)
            document = DocumentBuilder().build(records, keys)
        except TrustChainError as e:
            audit_log.run_aborted(e.to_dict())
            raise

        audit_log.document_built(len(document.commits), list(document.keys), document.digest())
        return document

    def _check_cancelled(self, commit_hash: Optional[str] = None) -> None:
        if self._cancelled.is_set():
            raise RunCancelled("run cancelled", commit_hash=commit_hash)
        self._remaining(commit_hash)

    def _verify_sequential(self, verifier: SignatureVerifier, hashes: List[str]) -> List[CommitRecord]:
        # with a deadline each call runs on a helper thread so a hung
        # git or gpg call cannot outlive the run
        pool = None
        if self._deadline is not None:
            pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="genesistrust")

        records = []
        try:
            for commit_hash in hashes:
                if self._cancelled.is_set():
                    raise RunCancelled("run cancelled", commit_hash=commit_hash)
                if pool is None:
                    record = verifier.verify_commit(commit_hash)
                else:
                    remaining = self._remaining(commit_hash)
                    ctx = contextvars.copy_context()
                    future = pool.submit(ctx.run, verifier.verify_commit, commit_hash)
                    record = self._result(future, commit_hash, remaining)
                if not record.passed():
                    raise record.to_error()
                records.append(record)
        finally:
            if pool is not None:
                pool.shutdown(wait=False, cancel_futures=True)
        return records

    def _verify_parallel(self, verifier: SignatureVerifier, hashes: List[str]) -> List[CommitRecord]:
        abort = threading.Event()

        def task(commit_hash: str) -> CommitRecord:
            if abort.is_set():
                raise RunCancelled("run aborted", commit_hash=commit_hash)
            self._check_cancelled(commit_hash)
            return verifier.verify_commit(commit_hash)

        records = []
        pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="genesistrust")
        futures: List[Future] = []
        try:
            for commit_hash in hashes:
                # each task needs its own context copy to carry the run id
                ctx = contextvars.copy_context()
                futures.append(pool.submit(ctx.run, task, commit_hash))

            for commit_hash, future in zip(hashes, futures):
                record = self._result(future, commit_hash, self._remaining(commit_hash))
                if not record.passed():
                    raise record.to_error()
                records.append(record)
        except BaseException:
            abort.set()
            for future in futures:
                future.cancel()
            # calls already running are abandoned, bounded by their own subprocess timeout
            pool.shutdown(wait=False, cancel_futures=True)
            logger.debug("Cancelled outstanding verifications")
            raise

        pool.shutdown(wait=True)
        return records

    def _result(self, future: Future, commit_hash: str, timeout: Optional[float]) -> CommitRecord:
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            raise RunCancelled(f"timeout after {self.timeout}s", commit_hash=commit_hash)

    def _remaining(self, commit_hash: Optional[str] = None) -> Optional[float]:
        """Seconds left before the deadline; raises RunCancelled once it has passed."""
        if self._deadline is None:
            return None
        remaining = self._deadline - self._clock()
        if remaining <= 0:
            raise RunCancelled(f"timeout after {self.timeout}s", commit_hash=commit_hash)
        return remaining


def build_trust_document(
    source: RepoSource,
    keystore: KeyStore,
    whitelist: Optional[WhitelistSet] = None,
    workers: int = 1,
    timeout: Optional[float] = None
) -> TrustDocument:
    """Convenience function: run the pipeline once."""
    pipeline = TrustChainPipeline(source, keystore, whitelist, workers=workers, timeout=timeout)
    return pipeline.run()
