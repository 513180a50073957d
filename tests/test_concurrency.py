"""
Concurrency tests for DocumentStore.

Exercises the per-document locks with threads: writers on different
documents proceed independently, writers on the same document are
serialized so a copy-on-write edit never races another edit.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from kbase.locks import DocumentLocks
from kbase.types import Document, EditFailure


TEXT = "The cat sat on the mat. The cat ran away."


class TestDocumentLocks:

    def test_same_id_same_lock(self):
        locks = DocumentLocks()
        assert locks._get("a") is locks._get("a")
        assert locks._get("a") is not locks._get("b")

    def test_reentrant(self):
        locks = DocumentLocks()
        with locks.hold("a"):
            with locks.hold("a"):
                pass

    def test_discard(self):
        locks = DocumentLocks()
        with locks.hold("a"):
            pass
        assert len(locks) == 1
        locks.discard("a")
        locks.discard("never-held")
        assert len(locks) == 0

    def test_serializes_same_document(self):
        locks = DocumentLocks()
        inside = 0
        max_inside = 0
        guard = threading.Lock()

        def work():
            nonlocal inside, max_inside
            with locks.hold("doc"):
                with guard:
                    inside += 1
                    max_inside = max(max_inside, inside)
                threading.Event().wait(0.01)
                with guard:
                    inside -= 1

        threads = [threading.Thread(target=work) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert max_inside == 1


class TestConcurrentStore:

    def test_parallel_adds(self, store):
        texts = [f"Document number {i} with some words in it." for i in range(20)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            docs = list(pool.map(store.add_document, texts))
        assert len({d.id for d in docs}) == 20
        assert store.backend.count() == 20
        assert len(store.index) == sum(d.number_of_chunks for d in docs)

    def test_parallel_adds_and_deletes(self, store):
        keep = [store.add_document(f"keep {i} " * 3) for i in range(5)]
        drop = [store.add_document(f"drop {i} " * 3) for i in range(5)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            deleted = list(pool.map(store.delete_document, [d.id for d in drop]))
            added = list(pool.map(store.add_document, [f"new {i} " * 3 for i in range(5)]))
        assert all(deleted)
        remaining = {d.id for d in store.get_all_documents()}
        assert remaining == {d.id for d in keep + added}
        hits = store.search("anything", top_k=1000)
        assert {h.document_id for h in hits} == remaining

    def test_racing_edits_of_one_document(self, store):
        doc = store.add_document(TEXT)
        barrier = threading.Barrier(2)

        def edit(new_word):
            barrier.wait()
            return store.edit_chunk(doc.id, 3, 4, "cat", new_word)

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(edit, ["dog", "fox"]))

        successes = [r for r in results if isinstance(r, Document)]
        failures = [r for r in results if isinstance(r, EditFailure)]
        assert len(successes) == 1
        assert failures == [EditFailure.DOCUMENT_NOT_FOUND]
        [current] = store.get_all_documents()
        assert current.id == successes[0].id
        assert len(store.index) == current.number_of_chunks

    def test_search_during_reload(self, memory_store):
        provider = memory_store.embedding_provider
        doc = memory_store.add_document(TEXT)
        entered = threading.Event()
        release = threading.Event()
        original_embed = provider.embed

        def slow_embed(text):
            if text != "cat":
                entered.set()
                release.wait(5)
            return original_embed(text)

        provider.embed = slow_embed
        with ThreadPoolExecutor(max_workers=2) as pool:
            reload = pool.submit(memory_store.reload_index_from_storage)
            try:
                assert entered.wait(5)
                # The old index keeps serving while windows are re-embedded
                hits = pool.submit(memory_store.search, "cat").result(timeout=2)
            finally:
                release.set()
            assert reload.result(timeout=5) == doc.number_of_chunks
        assert {h.document_id for h in hits} == {doc.id}

    def test_edit_of_unknown_id_leaves_no_lock(self, store):
        doc = store.add_document(TEXT)
        held = len(store.locks)
        for _ in range(3):
            assert store.edit_chunk("no-such-id", 0, 0, "x", "y") == EditFailure.DOCUMENT_NOT_FOUND
        assert len(store.locks) == held
        assert isinstance(store.edit_chunk(doc.id, 0, 0, "The", "A"), Document)
        assert len(store.locks) == held
