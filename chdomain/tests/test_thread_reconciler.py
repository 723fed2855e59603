"""Tests for vCPU thread reconciliation."""

from __future__ import annotations

import logging
import threading

import pytest

from chdomain.errors import MonitorError
from chdomain.monitor import Monitor, MonitorThreadInfo, ThreadType, VcpuThreadInfo
from chdomain.private import VCPU_TID_UNSET
from chdomain.threads import get_vcpu_tid, has_vcpu_tids, refresh_thread_info


class FakeMonitor(Monitor):
    """Monitor returning a scripted thread list."""

    def __init__(self, threads: list[MonitorThreadInfo], error: Exception | None = None):
        self.threads = threads
        self.error = error
        self.calls: list[bool] = []

    @property
    def pid(self) -> int:
        return 1000

    def get_thread_info(self, refresh: bool) -> list[MonitorThreadInfo]:
        self.calls.append(refresh)
        if self.error is not None:
            raise self.error
        return list(self.threads)


def _vcpu(cpuid: int, tid: int) -> MonitorThreadInfo:
    return MonitorThreadInfo(
        type=ThreadType.VCPU,
        tid=tid,
        name=f"vcpu{cpuid}",
        vcpu=VcpuThreadInfo(cpuid=cpuid, tid=tid),
    )


def _other(tid: int, thread_type: ThreadType = ThreadType.EMULATOR) -> MonitorThreadInfo:
    return MonitorThreadInfo(type=thread_type, tid=tid, name="cloud-hypervisor")


@pytest.fixture
def make_vm(driver, make_definition):
    def _make(max_vcpus: int, threads: list[MonitorThreadInfo], error: Exception | None = None):
        vm = driver.domains.add(make_definition(max_vcpus=max_vcpus))
        vm.private.monitor = FakeMonitor(threads, error)
        return vm
    return _make


class TestRefreshThreadInfo:
    def test_all_vcpus_reported(self, make_vm, caplog):
        vm = make_vm(2, [_other(1000), _vcpu(0, 1001), _vcpu(1, 1002)])
        with caplog.at_level(logging.WARNING):
            refresh_thread_info(vm)
        assert [v.tid for v in vm.vcpus] == [1001, 1002]
        assert vm.private.monitor.calls == [True]
        assert "mismatch" not in caplog.text

    def test_partial_vcpus_logged_not_failed(self, make_vm, caplog):
        vm = make_vm(4, [
            _other(1000),
            _vcpu(1, 1011),
            _other(1005, ThreadType.IO),
            _vcpu(3, 1013),
        ])
        with caplog.at_level(logging.WARNING, logger="chdomain.threads"):
            assert refresh_thread_info(vm) is None

        assert [v.tid for v in vm.vcpus] == [VCPU_TID_UNSET, 1011, VCPU_TID_UNSET, 1013]
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "expected: 4, actual: 2" in warnings[0].getMessage()

    def test_non_vcpu_threads_ignored(self, make_vm):
        vm = make_vm(1, [_other(1000), _other(1001, ThreadType.IO), _other(1002, ThreadType.UNKNOWN)])
        refresh_thread_info(vm)
        assert vm.vcpus[0].tid == VCPU_TID_UNSET

    def test_duplicate_index_last_write_wins(self, make_vm):
        vm = make_vm(1, [_vcpu(0, 2000), _vcpu(0, 2001)])
        refresh_thread_info(vm)
        assert vm.vcpus[0].tid == 2001

    def test_undeclared_vcpu_index_skipped(self, make_vm, caplog):
        vm = make_vm(2, [_vcpu(0, 3000), _vcpu(1, 3001), _vcpu(7, 3007)])
        with caplog.at_level(logging.WARNING, logger="chdomain.threads"):
            refresh_thread_info(vm)
        assert [v.tid for v in vm.vcpus] == [3000, 3001]
        assert len(vm.vcpus) == 2
        assert "expected: 2, actual: 3" in caplog.text

    def test_overwrites_stale_tids(self, make_vm):
        vm = make_vm(2, [_vcpu(0, 10), _vcpu(1, 11)])
        refresh_thread_info(vm)
        vm.private.monitor.threads = [_vcpu(0, 20), _vcpu(1, 21)]
        refresh_thread_info(vm)
        assert [v.tid for v in vm.vcpus] == [20, 21]

    def test_idempotent_with_unchanged_inventory(self, make_vm):
        vm = make_vm(3, [_vcpu(0, 500), _vcpu(2, 502)])
        refresh_thread_info(vm)
        first = [v.tid for v in vm.vcpus]
        refresh_thread_info(vm)
        assert [v.tid for v in vm.vcpus] == first == [500, VCPU_TID_UNSET, 502]

    def test_transport_failure_propagates(self, make_vm):
        vm = make_vm(2, [], error=MonitorError("VMM process 1000 is not running", pid=1000))
        with pytest.raises(MonitorError):
            refresh_thread_info(vm)
        assert all(v.tid == VCPU_TID_UNSET for v in vm.vcpus)

    def test_no_monitor(self, driver, make_definition):
        vm = driver.domains.add(make_definition())
        with pytest.raises(MonitorError) as exc:
            refresh_thread_info(vm)
        assert vm.name in exc.value.message

    def test_holds_domain_lock(self, make_vm):
        vm = make_vm(1, [_vcpu(0, 42)])
        observed = {}

        class LockProbe(FakeMonitor):
            def get_thread_info(self, refresh):
                # Another thread must not be able to take the lock mid-refresh
                result = {}
                t = threading.Thread(target=lambda: result.update(got=vm._lock.acquire(timeout=0.05)))
                t.start()
                t.join()
                observed["other_thread_acquired"] = result["got"]
                return super().get_thread_info(refresh)

        vm.private.monitor = LockProbe([_vcpu(0, 42)])
        refresh_thread_info(vm)
        assert observed["other_thread_acquired"] is False
        assert vm.vcpus[0].tid == 42


class TestVcpuTidAccessors:
    def test_get_vcpu_tid(self, make_vm):
        vm = make_vm(2, [_vcpu(1, 77)])
        refresh_thread_info(vm)
        assert get_vcpu_tid(vm, 0) == VCPU_TID_UNSET
        assert get_vcpu_tid(vm, 1) == 77
        assert get_vcpu_tid(vm, 5) == VCPU_TID_UNSET

    def test_has_vcpu_tids(self, make_vm):
        vm = make_vm(2, [_vcpu(1, 77)])
        assert has_vcpu_tids(vm) is False
        refresh_thread_info(vm)
        assert has_vcpu_tids(vm) is True
