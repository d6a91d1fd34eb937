"""
Unit Tests: Index Operations

Tests:
    - Add and search (ordering, k larger than ntotal)
    - Dimension validation leaving the index untouched
    - Explicit ids, removal and reset
    - Range search, assign, reconstruct
    - Training requirements and runtime parameters
    - Cloning and concurrent adds
"""

import threading

import pytest
import numpy as np

from faisskit.core.errors import ContractViolation, DimensionMismatch, ErrorCode, NativeFailure
from faisskit.core.types import NO_MATCH, MetricType
from faisskit.index.factory import index_factory
from faisskit.index.selector import IdSelector


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def corner_vectors():
    """Well-separated vectors: row i is 10 * e_i in 4 dimensions."""
    return (np.eye(4) * 10.0).astype(np.float32)


class TestAddSearch:
    """Tests for add and k-NN search."""

    def test_nearest_is_self(self, rng):
        index = index_factory(8, "Flat").unwrap()
        data = rng.standard_normal((50, 8), dtype=np.float32)

        assert index.add(data).is_ok()
        assert index.ntotal() == 50

        result = index.search(data[:5], k=3).unwrap()

        assert result.labels.shape == (5, 3)
        assert result.labels[:, 0].tolist() == [0, 1, 2, 3, 4]
        assert np.allclose(result.distances[:, 0], 0.0, atol=1e-4)
        assert np.all(np.diff(result.distances, axis=1) >= 0)

    def test_inner_product_descending(self, rng):
        index = index_factory(8, "Flat", MetricType.INNER_PRODUCT).unwrap()
        index.add(rng.standard_normal((30, 8), dtype=np.float32)).unwrap()

        result = index.search(rng.standard_normal((4, 8), dtype=np.float32), k=5).unwrap()

        assert np.all(np.diff(result.distances, axis=1) <= 0)

    def test_k_larger_than_ntotal(self, corner_vectors):
        index = index_factory(4, "Flat").unwrap()
        index.add(corner_vectors[:2]).unwrap()

        result = index.search(corner_vectors[:1], k=5).unwrap()

        assert result.k == 5
        assert result.labels[0, :2].tolist() == [0, 1]
        assert result.labels[0, 2:].tolist() == [NO_MATCH] * 3

    def test_search_empty_index(self):
        index = index_factory(4, "Flat").unwrap()
        result = index.search(np.zeros((2, 4), dtype=np.float32), k=3).unwrap()
        assert np.all(result.labels == NO_MATCH)

    def test_ties_ordered_by_label(self):
        index = index_factory(2, "Flat").unwrap()
        index.add(np.ones((4, 2), dtype=np.float32)).unwrap()

        result = index.search(np.ones((1, 2), dtype=np.float32), k=4).unwrap()

        assert result.labels[0].tolist() == [0, 1, 2, 3]

    def test_flat_list_input(self):
        index = index_factory(2, "Flat").unwrap()
        assert index.add([0.0, 0.0, 1.0, 1.0]).is_ok()
        assert index.ntotal() == 2

    def test_k_must_be_positive(self):
        index = index_factory(2, "Flat").unwrap()
        with pytest.raises(ValueError):
            index.search(np.zeros((1, 2), dtype=np.float32), k=0)

    def test_assign(self, corner_vectors):
        index = index_factory(4, "Flat").unwrap()
        index.add(corner_vectors).unwrap()

        labels = index.assign(corner_vectors[::-1]).unwrap()

        assert labels.shape == (4, 1)
        assert labels[:, 0].tolist() == [3, 2, 1, 0]


class TestDimensionValidation:
    """DimensionMismatch never reaches the engine."""

    def test_add_not_multiple_of_d(self):
        index = index_factory(4, "Flat").unwrap()

        result = index.add(np.zeros(10, dtype=np.float32))

        assert isinstance(result.error, DimensionMismatch)
        assert result.error.expected == 4
        assert result.error.actual == 10
        assert index.ntotal() == 0

    def test_search_wrong_width(self):
        index = index_factory(4, "Flat").unwrap()
        result = index.search(np.zeros((2, 3), dtype=np.float32), k=1)
        assert result.error.code is ErrorCode.DIMENSION_MISMATCH

    def test_train_wrong_width(self):
        index = index_factory(4, "IVF2,Flat").unwrap()
        assert isinstance(index.train(np.zeros((10, 5))).error, DimensionMismatch)
        assert not index.is_trained()

    def test_id_count_mismatch(self):
        index = index_factory(4, "IDMap,Flat").unwrap()
        result = index.add_with_ids(np.zeros((3, 4)), [1, 2])
        assert isinstance(result.error, DimensionMismatch)
        assert index.ntotal() == 0


class TestExplicitIds:
    """Tests for add_with_ids / remove_ids / reset."""

    def test_id_map_labels(self, corner_vectors):
        index = index_factory(4, "IDMap,Flat").unwrap()

        assert index.add_with_ids(corner_vectors, [100, 200, 300, 400]).is_ok()

        result = index.search(corner_vectors[2:3], k=1).unwrap()
        assert result.labels[0, 0] == 300

    def test_flat_rejects_ids(self, corner_vectors):
        index = index_factory(4, "Flat").unwrap()

        result = index.add_with_ids(corner_vectors, [1, 2, 3, 4])

        assert isinstance(result.error, NativeFailure)
        assert index.ntotal() == 0

    def test_remove_range(self, corner_vectors):
        index = index_factory(4, "IDMap,Flat").unwrap()
        index.add_with_ids(corner_vectors, [10, 11, 12, 13]).unwrap()

        removed = index.remove_ids(IdSelector.range(10, 12)).unwrap()

        assert removed == 2
        assert index.ntotal() == 2
        labels = index.search(corner_vectors, k=2).unwrap().labels
        assert set(labels.ravel().tolist()) - {NO_MATCH} == {12, 13}

    def test_remove_batch(self, corner_vectors):
        index = index_factory(4, "IDMap,Flat").unwrap()
        index.add_with_ids(corner_vectors, [10, 11, 12, 13]).unwrap()

        assert index.remove_ids(IdSelector.batch([11, 99])).unwrap() == 1
        assert index.ntotal() == 3

    def test_reset_keeps_training(self, rng):
        index = index_factory(8, "IVF2,Flat").unwrap()
        data = rng.standard_normal((100, 8), dtype=np.float32)
        index.train(data).unwrap()
        index.add(data).unwrap()

        assert index.reset().is_ok()

        assert index.ntotal() == 0
        assert index.is_trained()


class TestTraining:
    """Tests for trained variants."""

    def test_add_before_train(self, rng):
        index = index_factory(8, "IVF4,Flat").unwrap()

        result = index.add(rng.standard_normal((10, 8), dtype=np.float32))

        assert isinstance(result.error, NativeFailure)
        assert "train" in result.error.engine_message
        assert index.ntotal() == 0

    def test_train_then_add(self, rng):
        index = index_factory(8, "IVF4,Flat").unwrap()
        data = rng.standard_normal((200, 8), dtype=np.float32)

        assert index.train(data).is_ok()
        assert index.is_trained()
        assert index.add(data).is_ok()
        assert index.ntotal() == 200

    def test_set_nprobe(self, rng):
        index = index_factory(8, "IVF4,Flat").unwrap()
        index.train(rng.standard_normal((200, 8), dtype=np.float32)).unwrap()

        assert index.set_parameter("nprobe", 3).is_ok()
        assert index._native().nprobe == 3

    def test_unknown_parameter(self):
        index = index_factory(8, "Flat").unwrap()
        assert isinstance(index.set_parameter("bogus", 1).error, NativeFailure)


class TestRangeSearch:
    """Tests for range search."""

    def test_radius(self, corner_vectors):
        index = index_factory(4, "Flat").unwrap()
        index.add(corner_vectors).unwrap()

        result = index.range_search(corner_vectors[:2], radius=1.0).unwrap()

        assert result.nq == 2
        assert result.counts().tolist() == [1, 1]
        assert result.query(0)[0].tolist() == [0]
        assert result.query(1)[0].tolist() == [1]

    def test_large_radius(self, corner_vectors):
        index = index_factory(4, "Flat").unwrap()
        index.add(corner_vectors).unwrap()

        result = index.range_search(corner_vectors[:1], radius=1000.0).unwrap()

        assert len(result) == 4


class TestReconstructAndClone:
    """Tests for reconstruct and try_clone."""

    def test_reconstruct(self, corner_vectors):
        index = index_factory(4, "Flat").unwrap()
        index.add(corner_vectors).unwrap()

        assert np.allclose(index.reconstruct(2).unwrap(), corner_vectors[2])

    def test_reconstruct_unsupported(self, corner_vectors):
        index = index_factory(4, "IDMap,Flat").unwrap()
        index.add_with_ids(corner_vectors, [5, 6, 7, 8]).unwrap()
        assert isinstance(index.reconstruct(5).error, NativeFailure)

    def test_clone_is_independent(self, corner_vectors):
        index = index_factory(4, "Flat").unwrap()
        index.add(corner_vectors[:2]).unwrap()

        clone = index.try_clone().unwrap()
        clone.add(corner_vectors[2:]).unwrap()

        assert index.ntotal() == 2
        assert clone.ntotal() == 4


class TestLifetime:
    """Tests for release and concurrent mutation."""

    def test_release(self):
        index = index_factory(4, "Flat").unwrap()
        index.release()

        assert not index.alive
        assert "released" in repr(index)
        with pytest.raises(ContractViolation):
            index.ntotal()

    def test_concurrent_adds(self, rng):
        index = index_factory(8, "Flat").unwrap()
        batches = [rng.standard_normal((25, 8), dtype=np.float32) for _ in range(8)]

        threads = [threading.Thread(target=index.add, args=(batch,)) for batch in batches]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert index.ntotal() == 200
