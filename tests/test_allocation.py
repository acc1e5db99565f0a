import pytest

from vmconsolidation.allocation import (
    AllocationPair, AllocationRestoreError, AllocationSnapshot, MigrationEntry,
)


def test_capture_skips_vms_migrating_in(make_host, make_vm):
    h1, h2 = make_host("H1"), make_host("H2")
    a = make_vm("A", 100, host=h1)
    b = make_vm("B", 200, host=h1)
    h2.add_migrating_in(b)

    snapshot = AllocationSnapshot.capture([h1, h2])

    assert list(snapshot) == [AllocationPair(a, h1), AllocationPair(b, h1)]
    assert snapshot.host_of(b) is h1


def test_restore_undoes_trial_moves(make_host, make_vm):
    h1, h2, h3 = make_host("H1"), make_host("H2"), make_host("H3")
    a = make_vm("A", 100, host=h1)
    b = make_vm("B", 200, host=h2)
    c = make_vm("C", 300, host=h3)
    h3.add_migrating_in(b)
    hosts = [h1, h2, h3]

    snapshot = AllocationSnapshot.capture(hosts)
    h1.detach(a)
    h2.try_attach(a)
    h3.detach(c)

    snapshot.restore(hosts)

    assert h1.vms == [a]
    assert h2.vms == [b]
    assert set(h3.vms) == {b, c}
    assert (a.host, b.host, c.host) == (h1, h2, h3)


def test_restore_failure_is_fatal(make_host, make_vm):
    host = make_host("H1", ram=256)
    vm = make_vm("A", 100, ram=512)
    snapshot = AllocationSnapshot([AllocationPair(vm, host)])

    with pytest.raises(AllocationRestoreError):
        snapshot.restore([host])


def test_migration_entry_is_a_two_field_record(make_host, make_vm):
    host = make_host("H1")
    vm = make_vm("A", 100)
    entry = MigrationEntry(vm, host)

    assert entry.vm is vm
    assert entry.host is host
    assert MigrationEntry._fields == ("vm", "host")


def test_restore_keeps_hosts_whose_demand_grew(make_host, make_vm):
    host = make_host("H1")
    a = make_vm("A", 500, host=host)
    b = make_vm("B", 500, host=host)
    b.mips = 700
    snapshot = AllocationSnapshot.capture([host])
    host.detach(a)

    snapshot.restore([host])

    assert host.vms == [a, b]
    assert host.utilization_of_cpu() == pytest.approx(1.2)
