# allocation.py
import logging
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)


class MigrationEntry(NamedTuple):
    """One decision of a migration plan: move `vm` to `host`."""
    vm: object
    host: object


class AllocationPair(NamedTuple):
    vm: object
    host: object


class PlacementResult(NamedTuple):
    feasible: bool
    reason: str = ""
    power_after: Optional[float] = None


class AllocationRestoreError(RuntimeError):
    """A saved VM could not be put back on its host; the scheduler state is corrupt."""


class AllocationSnapshot:
    def __init__(self, pairs=None):
        self.pairs = list(pairs or [])

    @classmethod
    def capture(cls, hosts):
        """
        Record the real VM -> host assignment, leaving out VMs that are migrating in.
        """
        pairs = []
        for host in hosts:
            for vm in host.vms:
                if vm in host.vms_migrating_in:
                    continue
                pairs.append(AllocationPair(vm, host))
        return cls(pairs)

    def restore(self, hosts):
        """
        Detach everything, re-reserve VMs migrating in, then re-attach every saved pair.

        :raises AllocationRestoreError: if a saved pair cannot be re-attached
        """
        for host in hosts:
            host.detach_all()
            host.reattach_pending_inbound()
        for vm, host in self.pairs:
            if not host.try_attach(vm, check_cpu=False):
                logger.critical("Couldn't restore VM %s on host %s", vm.vm_id, host.host_id)
                raise AllocationRestoreError(
                    f"Couldn't restore VM {vm.vm_id} on host {host.host_id}")

    def host_of(self, vm):
        for pair in self.pairs:
            if pair.vm is vm:
                return pair.host
        return None

    def __len__(self):
        return len(self.pairs)

    def __iter__(self):
        return iter(self.pairs)
