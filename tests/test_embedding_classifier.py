"""Unit tests for EmbeddingClassifier."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from models.chunk import Chunk
from services.embedding_classifier import EmbeddingClassifier
from services.errors import JobCancelledError
from services.retry import CancellationToken


def batch_calls(embedder):
    return [args for kind, args in embedder.calls if kind == "embed_batch"]


class TestEmbeddingClassifier:
    """Test suite for EmbeddingClassifier."""

    def test_classify_chunks_assigns_best_category(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)
        chunks = [
            Chunk(chunk_id="chunk-0", text="The budget ceiling and budget breakdown"),
            Chunk(chunk_id="chunk-1", text="Project timeline and milestones"),
        ]

        classifier.classify_chunks(chunks, ["budget", "timeline", "team"])

        assert chunks[0].category == "budget"
        assert chunks[0].confidence == pytest.approx(1.0)
        assert chunks[1].category == "timeline"
        assert chunks[0].embedding.shape == (8,)

    def test_below_threshold_left_uncategorized(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, threshold=0.3, retry_policy=no_wait_retry)
        chunks = [Chunk(chunk_id="chunk-0", text="Nothing related at all")]

        classifier.classify_chunks(chunks, ["budget", "timeline"])

        assert chunks[0].category is None
        assert chunks[0].confidence == 0.0
        assert chunks[0].embedding is not None

    def test_tie_goes_to_first_label(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)
        embedding = classifier.embed_text("budget and timeline")

        category, confidence = classifier.best_category(embedding, ["timeline", "budget"])

        assert category == "timeline"
        assert confidence == pytest.approx(0.7071, abs=1e-4)

    def test_no_categories(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)

        assert classifier.best_category(classifier.embed_text("budget"), []) == (None, None)

    def test_category_embeddings_cached(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)

        classifier.category_embeddings(["budget", "team"])
        classifier.category_embeddings(["team", "budget"])
        classifier.category_embeddings(["budget", "risk"])

        assert batch_calls(embedder) == [["budget", "team"], ["risk"]]

    def test_texts_sent_in_batches(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, batch_size=2, retry_policy=no_wait_retry)

        vectors = classifier.embed_texts(["budget", "team", "risk", "title", "timeline"])

        assert [len(call) for call in batch_calls(embedder)] == [2, 2, 1]
        assert len(vectors) == 5

    def test_blank_texts_get_zero_vector_without_call(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)

        vectors = classifier.embed_texts(["", "budget", "   "])

        assert batch_calls(embedder) == [["budget"]]
        assert vectors[0].tolist() == [0.0] * 8
        assert vectors[2].tolist() == [0.0] * 8
        assert vectors[1][0] == 1.0

    def test_failed_batch_falls_back_to_single_requests(self, make_embedder, no_wait_retry):
        embedder = make_embedder(fail_on={"poison"})
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)

        vectors = classifier.embed_texts(["budget", "poison team", "risk"])

        singles = [text for kind, text in embedder.calls if kind == "embed"]
        assert singles == ["budget", "poison team", "risk"]
        assert vectors[0][0] == 1.0
        assert vectors[1].tolist() == [0.0] * 8
        assert vectors[2][5] == 1.0

    def test_failed_single_text_degrades_to_zero_vector(self, make_embedder, no_wait_retry):
        embedder = make_embedder(fail_on={"poison"})
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)

        vector = classifier.embed_text("poison")

        assert vector.tolist() == [0.0] * 8
        assert [kind for kind, _ in embedder.calls] == ["embed_batch"]

    def test_transient_failures_retried(self, embedder, no_wait_retry, transient):
        failures = [transient(), transient()]
        original = embedder.embed_batch

        def flaky(texts):
            if failures:
                raise failures.pop()
            return original(texts)

        embedder.embed_batch = flaky
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)

        vector = classifier.embed_text("budget")

        assert vector[0] == 1.0
        assert no_wait_retry.delays == [1.0, 2.0]

    def test_vectors_fitted_to_job_dimension(self, make_embedder, no_wait_retry):
        classifier = EmbeddingClassifier(make_embedder(dimensions=8), dimension=4,
                                         retry_policy=no_wait_retry)

        assert classifier.embed_text("budget").shape == (4,)

    def test_cancelled_token_stops_embedding(self, embedder, no_wait_retry):
        token = CancellationToken()
        token.cancel()
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry,
                                         cancel_token=token, job_id="job-1")

        with pytest.raises(JobCancelledError) as exc_info:
            classifier.embed_text("budget")

        assert exc_info.value.job_id == "job-1"
        assert embedder.calls == []

    def test_group_by_category(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)
        items = ["Budget must not exceed the budget cap", "Team lead with team experience",
                 "Sign every page"]

        grouped = classifier.group_by_category(items, ["budget", "team"])

        assert grouped == {
            "categories": {
                "budget": ["Budget must not exceed the budget cap"],
                "team": ["Team lead with team experience"],
            },
            "uncategorized": ["Sign every page"],
        }

    def test_group_by_category_uses_text_of(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)
        items = [{"name": "Risk handling"}, {"name": "Overall budget"}]

        grouped = classifier.group_by_category(items, ["budget", "risk"],
                                               text_of=lambda m: m["name"])

        assert grouped["categories"]["risk"] == [{"name": "Risk handling"}]
        assert grouped["categories"]["budget"] == [{"name": "Overall budget"}]

    def test_group_by_category_empty(self, embedder, no_wait_retry):
        classifier = EmbeddingClassifier(embedder, retry_policy=no_wait_retry)

        assert classifier.group_by_category([], ["budget"]) == {"categories": {}, "uncategorized": []}
        assert embedder.calls == []

    def test_batch_size_must_be_positive(self, embedder):
        with pytest.raises(ValueError, match="batch_size must be positive"):
            EmbeddingClassifier(embedder, batch_size=0)
