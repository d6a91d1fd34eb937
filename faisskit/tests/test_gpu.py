"""
Unit Tests: GPU Residency

The engine's GPU entry points are replaced with host clones, so these tests
exercise the ownership rules on any build:

Tests:
    - Resources creation and tuning
    - Host -> device -> host moves consume the source
    - Failed moves leave the source untouched
    - Resources teardown while indexes are live
"""

import gc

import pytest
import numpy as np
import faiss

from faisskit.core import config as config_module
from faisskit.core.config import EngineConfig
from faisskit.core.errors import ContractViolation, NativeFailure
from faisskit.core.protocols import GpuResourcesProtocol
from faisskit.core.types import MetricType, Residency
from faisskit.gpu.resources import StandardGpuResources, check_device, gpu_available, num_gpus
from faisskit.index.factory import index_factory
from faisskit.index.gpu import GpuIndexImpl
from faisskit.index.impl import IndexImpl


class FakeGpuResources:
    """Records the tuning calls made on it."""

    def __init__(self):
        self.calls = []

    def noTempMemory(self):
        self.calls.append(("noTempMemory",))

    def setTempMemory(self, size):
        self.calls.append(("setTempMemory", size))

    def setPinnedMemory(self, size):
        self.calls.append(("setPinnedMemory", size))

    def setDefaultNullStreamAllDevices(self):
        self.calls.append(("setDefaultNullStreamAllDevices",))


@pytest.fixture
def fake_gpu(monkeypatch):
    """Two visible devices backed by host clones."""
    monkeypatch.setattr(faiss, "get_num_gpus", lambda: 2, raising=False)
    monkeypatch.setattr(faiss, "StandardGpuResources", FakeGpuResources, raising=False)
    monkeypatch.setattr(
        faiss, "index_cpu_to_gpu",
        lambda res, device, index, *args: faiss.clone_index(index),
        raising=False,
    )
    monkeypatch.setattr(
        faiss, "index_gpu_to_cpu", lambda index: faiss.clone_index(index), raising=False
    )
    monkeypatch.setattr(
        faiss, "index_cpu_to_gpu_multiple_py",
        lambda resources, index, co=None, gpus=None: faiss.clone_index(index),
        raising=False,
    )
    monkeypatch.setattr(faiss, "GpuParameterSpace", faiss.ParameterSpace, raising=False)


@pytest.fixture
def populated():
    rng = np.random.default_rng(3)
    data = rng.standard_normal((40, 8), dtype=np.float32)
    index = index_factory(8, "Flat").unwrap()
    index.add(data).unwrap()
    return index, data


class TestNoGpu:
    """Behaviour without visible devices."""

    def test_resources_unavailable(self, monkeypatch):
        monkeypatch.setattr(faiss, "get_num_gpus", lambda: 0, raising=False)

        assert not gpu_available()
        assert isinstance(StandardGpuResources.new().error, NativeFailure)
        assert isinstance(check_device(0).error, NativeFailure)


class TestResources:
    """Tests for StandardGpuResources."""

    def test_new(self, fake_gpu):
        assert gpu_available()
        assert num_gpus() == 2
        res = StandardGpuResources.new().unwrap()

        assert not res.closed
        assert res.dependents() == 0
        assert isinstance(res, GpuResourcesProtocol)

    def test_temp_memory(self, fake_gpu):
        res = StandardGpuResources.new(temp_memory=1 << 20).unwrap()
        assert res.native().calls == [("setTempMemory", 1 << 20)]

    def test_temp_memory_from_config(self, fake_gpu, monkeypatch):
        monkeypatch.setattr(config_module, "_active", EngineConfig(gpu_temp_memory=4096))

        res = StandardGpuResources.new().unwrap()

        assert res.native().calls == [("setTempMemory", 4096)]

    def test_tuning(self, fake_gpu):
        res = StandardGpuResources.new().unwrap()

        assert res.no_temp_memory().is_ok()
        assert res.set_pinned_memory(4096).is_ok()
        assert res.set_default_null_stream_all_devices().is_ok()
        assert [call[0] for call in res.native().calls] == [
            "noTempMemory", "setPinnedMemory", "setDefaultNullStreamAllDevices",
        ]

    def test_close_twice(self, fake_gpu):
        res = StandardGpuResources.new().unwrap()
        res.close()
        res.close()
        assert res.closed
        with pytest.raises(ContractViolation):
            res.native()

    def test_register_after_close(self, fake_gpu, populated):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()
        res.close()

        with pytest.raises(ContractViolation):
            res._register(index)
        assert res.dependents() == 0

    def test_check_device_range(self, fake_gpu):
        assert check_device(1).unwrap() == 1
        assert check_device(2).is_err()


class TestMigration:
    """Tests for host <-> device moves."""

    def test_roundtrip_consumes_sources(self, fake_gpu, populated):
        index, data = populated
        expected = index.search(data[:5], k=4).unwrap()
        res = StandardGpuResources.new().unwrap()

        gpu_index = index.to_gpu(res, 1).unwrap()

        assert isinstance(gpu_index, GpuIndexImpl)
        assert not index.alive
        with pytest.raises(ContractViolation):
            index.ntotal()
        assert gpu_index.device == 1
        assert gpu_index.stats().residency is Residency.DEVICE
        assert gpu_index.stats().devices == (1,)
        assert gpu_index.ntotal() == 40
        assert res.dependents() == 1

        host = gpu_index.to_cpu().unwrap()

        assert isinstance(host, IndexImpl)
        assert not gpu_index.alive
        with pytest.raises(ContractViolation):
            gpu_index.search(data[:1], k=1)
        assert res.dependents() == 0
        actual = host.search(data[:5], k=4).unwrap()
        assert np.array_equal(actual.labels, expected.labels)
        res.close()
        assert host.ntotal() == 40

    def test_default_device_from_config(self, fake_gpu, populated, monkeypatch):
        index, _ = populated
        monkeypatch.setattr(config_module, "_active", EngineConfig(default_device=1))
        res = StandardGpuResources.new().unwrap()

        gpu_index = index.to_gpu(res).unwrap()

        assert gpu_index.device == 1
        assert not index.alive

    def test_device_search_and_mutation(self, fake_gpu, populated):
        index, data = populated
        res = StandardGpuResources.new().unwrap()
        gpu_index = index.to_device(res).unwrap()

        assert gpu_index.add(data[:10]).is_ok()
        assert gpu_index.ntotal() == 50
        assert gpu_index.search(data[:2], k=3).unwrap().labels[:, 0].tolist() == [0, 1]
        assert gpu_index.metric_type() is MetricType.L2

    def test_serialize_device_index(self, fake_gpu, populated):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()
        gpu_index = index.to_gpu(res, 0).unwrap()

        data = gpu_index.serialize().unwrap()

        assert gpu_index.alive
        assert IndexImpl.deserialize(data).unwrap().ntotal() == 40

    def test_failed_move_keeps_source(self, fake_gpu, populated, monkeypatch):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()

        def fail(res, device, index, *args):
            raise RuntimeError("Error in faiss::gpu::allocMemory: out of device memory")

        monkeypatch.setattr(faiss, "index_cpu_to_gpu", fail, raising=False)

        result = index.to_gpu(res, 0)

        assert isinstance(result.error, NativeFailure)
        assert index.alive
        assert index.ntotal() == 40
        assert res.dependents() == 0

    def test_move_to_closed_resources_keeps_source(self, fake_gpu, populated):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()
        res.close()

        with pytest.raises(ContractViolation):
            index.to_gpu(res, 0)
        assert index.alive
        assert index.ntotal() == 40

    def test_bad_device_keeps_source(self, fake_gpu, populated):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()

        assert isinstance(index.to_gpu(res, 5).error, NativeFailure)
        assert index.alive

    def test_move_without_gpu(self, monkeypatch, populated):
        index, _ = populated
        monkeypatch.setattr(faiss, "get_num_gpus", lambda: 0, raising=False)

        class NoResources:
            def native(self):
                return None

        assert index.to_gpu(NoResources(), 0).is_err()
        assert index.alive

    def test_multiple_devices(self, fake_gpu, populated):
        index, _ = populated
        resources = [StandardGpuResources.new().unwrap() for _ in range(2)]

        gpu_index = index.to_gpu_multiple(resources, [0, 1]).unwrap()

        assert gpu_index.devices() == (0, 1)
        assert not index.alive
        assert all(res.dependents() == 1 for res in resources)

    def test_multiple_devices_length_mismatch(self, fake_gpu, populated):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()
        with pytest.raises(ValueError):
            index.to_gpu_multiple([res], [0, 1])

    def test_set_parameter_on_device(self, fake_gpu):
        index = index_factory(8, "IVF2,Flat").unwrap()
        index.train(np.random.default_rng(0).standard_normal((100, 8), dtype=np.float32)).unwrap()
        res = StandardGpuResources.new().unwrap()
        gpu_index = index.to_gpu(res, 0).unwrap()

        assert gpu_index.set_parameter("nprobe", 2).is_ok()


class TestTeardown:
    """Tests for resources lifetime rules."""

    def test_close_with_live_index(self, fake_gpu, populated):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()
        gpu_index = index.to_gpu(res, 0).unwrap()

        with pytest.raises(ContractViolation):
            res.close()

        assert not res.closed
        assert gpu_index.ntotal() == 40

    def test_close_after_release(self, fake_gpu, populated):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()
        gpu_index = index.to_gpu(res, 0).unwrap()

        gpu_index.release()
        res.close()

        assert res.closed

    def test_dropped_index_unbinds(self, fake_gpu, populated):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()
        gpu_index = index.to_gpu(res, 0).unwrap()

        del gpu_index
        gc.collect()

        assert res.dependents() == 0
        res.close()

    def test_index_outliving_resources(self, fake_gpu, populated):
        index, _ = populated
        res = StandardGpuResources.new().unwrap()
        gpu_index = index.to_gpu(res, 0).unwrap()

        del res
        gc.collect()

        with pytest.raises(ContractViolation):
            gpu_index.ntotal()
        with pytest.raises(ContractViolation):
            gpu_index.to_cpu()

    def test_context_manager(self, fake_gpu, populated):
        index, _ = populated
        with StandardGpuResources.new().unwrap() as res:
            gpu_index = index.to_gpu(res, 0).unwrap()
            host = gpu_index.to_cpu().unwrap()

        assert res.closed
        assert host.ntotal() == 40
