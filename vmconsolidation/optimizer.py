# optimizer.py
"""
Dynamic VM consolidation.

Once per control interval the optimizer looks at every host, evicts VMs from the
over-utilized ones and re-places them, then tries to empty the least loaded hosts so
they can be switched off. All of this is done on the live hosts as a trial run; the
real allocation is restored before returning and only the migration plan leaves.
"""
import logging
import time

from .allocation import AllocationSnapshot, AllocationRestoreError, MigrationEntry
from .classifiers import StaticThreshold
from .clustering import VmClusterer
from .config import OVERLOAD_RANKING, DRAIN_RANKING, DEFAULT_RANKING
from .datacenter import SimulationClock
from .history import HistoryRecorder
from .schedule import get_ranking_strategy
from .vm_selection import MinimumMigrationTime

logger = logging.getLogger(__name__)


class MigrationOptimizer:
    def __init__(self, hosts, classifier=None, vm_selection_policy=None,
                 overload_ranking=None, drain_ranking=None, default_ranking=None,
                 clusterer=None, recorder=None, clock=None):
        """
        :param hosts: Hosts of the datacenter, owned by the simulation
        :param classifier: UtilizationClassifier deciding over-utilization
        :param vm_selection_policy: VmSelectionPolicy picking VMs to evict
        :param overload_ranking: HostRankingStrategy for VMs evicted from over-utilized hosts
        :param drain_ranking: HostRankingStrategy for VMs of a host being drained
        :param default_ranking: HostRankingStrategy for single-VM lookups and initial placement
        :param clusterer: VmClusterer ordering VMs before placement
        :param recorder: HistoryRecorder for per-host samples and timings
        :param clock: SimulationClock providing the current simulated time
        """
        self.hosts = hosts
        self.classifier = classifier or StaticThreshold()
        self.vm_selection_policy = vm_selection_policy or MinimumMigrationTime()
        self.overload_ranking = overload_ranking or get_ranking_strategy(OVERLOAD_RANKING)
        self.drain_ranking = drain_ranking or get_ranking_strategy(DRAIN_RANKING)
        self.default_ranking = default_ranking or get_ranking_strategy(DEFAULT_RANKING)
        self.clusterer = clusterer or VmClusterer()
        self.recorder = recorder or HistoryRecorder()
        self.clock = clock or SimulationClock()

    def optimize_allocation(self, vm_list):
        """
        Build the migration plan for the current interval.

        :param vm_list: VMs currently running in the datacenter
        :return: list of MigrationEntry, in the order the placements were decided
        """
        total_start = time.perf_counter()
        logger.debug("Optimizing allocation of %d VMs on %d hosts at t=%s",
                     len(vm_list), len(self.hosts), self.clock.now())

        start = time.perf_counter()
        over_utilized_hosts = self.get_over_utilized_hosts()
        host_selection_time = time.perf_counter() - start

        if over_utilized_hosts:
            logger.info("Over-utilized hosts: %s", ", ".join(str(h.host_id) for h in over_utilized_hosts))

        snapshot = AllocationSnapshot.capture(self.hosts)
        try:
            start = time.perf_counter()
            vms_to_migrate = self.get_vms_to_migrate_from_hosts(over_utilized_hosts)
            vm_selection_time = time.perf_counter() - start

            start = time.perf_counter()
            migration_map = self.get_new_vm_placement(vms_to_migrate, set(over_utilized_hosts))
            vm_reallocation_time = time.perf_counter() - start

            migration_map.extend(self.get_migration_map_from_under_utilized_hosts(over_utilized_hosts))
        finally:
            snapshot.restore(self.hosts)

        self.recorder.add_execution_times(host_selection_time, vm_selection_time,
                                          vm_reallocation_time, time.perf_counter() - total_start)
        return migration_map

    def get_over_utilized_hosts(self):
        current_time = self.clock.now()
        over_utilized_hosts = []
        for host in self.hosts:
            self.recorder.add_history_entry(host, current_time, self.classifier.threshold(host))
            if self.classifier.is_over_utilized(host):
                over_utilized_hosts.append(host)
        return over_utilized_hosts

    def get_switched_off_hosts(self):
        return [host for host in self.hosts if host.utilization_of_cpu() == 0]

    def get_vms_to_migrate_from_hosts(self, over_utilized_hosts):
        """Evict VMs one at a time until each host is no longer over-utilized."""
        vms_to_migrate = []
        for host in over_utilized_hosts:
            while True:
                vm = self.vm_selection_policy.select_victim(host)
                if vm is None or vm not in host.vms:
                    break
                vms_to_migrate.append(vm)
                host.detach(vm)
                if not self.classifier.is_over_utilized(host):
                    break
        return vms_to_migrate

    def get_new_vm_placement(self, vms_to_migrate, excluded_hosts):
        """
        Place VMs evicted from over-utilized hosts. A VM with no feasible destination
        is left out of the plan.
        """
        migration_map = []
        candidates = [host for host in self.hosts if host not in excluded_hosts]
        clustering = self.clusterer.cluster(vms_to_migrate, candidates)

        for vm in clustering.ordered_vms():
            allocated_host = self.overload_ranking.find_host(vm, self.hosts, self.classifier, excluded_hosts)
            if allocated_host is not None and allocated_host.try_attach(vm):
                logger.info("VM #%s allocated to host #%s", vm.vm_id, allocated_host.host_id)
                migration_map.append(MigrationEntry(vm, allocated_host))
            else:
                logger.info("No destination for VM #%s, left out of the migration plan", vm.vm_id)
        return migration_map

    def get_migration_map_from_under_utilized_hosts(self, over_utilized_hosts):
        migration_map = []
        switched_off_hosts = self.get_switched_off_hosts()

        # Hosts that may not be drained: over-utilized, switched off, already drained or receiving VMs
        excluded_for_under_utilized = set(over_utilized_hosts) | set(switched_off_hosts)
        # Hosts that may not receive VMs: over-utilized, switched off, already drained
        excluded_for_placement = set(over_utilized_hosts) | set(switched_off_hosts)

        number_of_hosts = len(self.hosts)
        while len(excluded_for_under_utilized) < number_of_hosts:
            under_utilized_host = self.get_under_utilized_host(excluded_for_under_utilized)
            if under_utilized_host is None:
                break

            logger.info("Under-utilized host: host #%s", under_utilized_host.host_id)
            excluded_for_under_utilized.add(under_utilized_host)
            excluded_for_placement.add(under_utilized_host)

            vms_to_migrate = self.get_vms_to_migrate_from_under_utilized_host(under_utilized_host)
            if not vms_to_migrate:
                continue

            logger.info("Reallocation of VMs from the under-utilized host: %s",
                        " ".join(str(vm.vm_id) for vm in vms_to_migrate))
            new_vm_placement = self.get_new_vm_placement_from_under_utilized_host(
                vms_to_migrate, excluded_for_placement)

            excluded_for_under_utilized.update(entry.host for entry in new_vm_placement)
            migration_map.extend(new_vm_placement)

        return migration_map

    def get_under_utilized_host(self, excluded_hosts):
        """The host with the lowest positive utilization that is safe to drain."""
        min_utilization = 1
        under_utilized_host = None
        for host in self.hosts:
            if host in excluded_hosts:
                continue
            utilization = host.utilization_of_cpu()
            if (0 < utilization < min_utilization
                    and not self.are_all_vms_migrating_out_or_any_vm_migrating_in(host)):
                min_utilization = utilization
                under_utilized_host = host
        return under_utilized_host

    @staticmethod
    def are_all_vms_migrating_out_or_any_vm_migrating_in(host):
        if host.vms_migrating_in:
            return True
        return all(vm.in_migration for vm in host.vms)

    @staticmethod
    def get_vms_to_migrate_from_under_utilized_host(host):
        return [vm for vm in host.vms if not vm.in_migration]

    def get_new_vm_placement_from_under_utilized_host(self, vms_to_migrate, excluded_hosts):
        """
        Move every VM of a drained host, or none of them.

        VMs are moved one by one in the trial state. If one of them has nowhere to go,
        the VMs already moved are put back on the host they came from and an empty
        plan is returned.
        """
        migration_map = []
        moved = []
        candidates = [host for host in self.hosts if host not in excluded_hosts]
        clustering = self.clusterer.cluster(vms_to_migrate, candidates)

        for vm in clustering.ordered_vms():
            source_host = vm.host
            allocated_host = self.drain_ranking.find_host(vm, self.hosts, self.classifier, excluded_hosts)
            if allocated_host is not None:
                if source_host is not None:
                    source_host.detach(vm)
                if allocated_host.try_attach(vm):
                    logger.info("VM #%s allocated to host #%s", vm.vm_id, allocated_host.host_id)
                    moved.append((vm, source_host))
                    migration_map.append(MigrationEntry(vm, allocated_host))
                    continue
                moved.append((vm, source_host))

            logger.info("Not all VMs can be reallocated from the host, reallocation cancelled")
            self._rollback_moves(moved)
            return []
        return migration_map

    @staticmethod
    def _rollback_moves(moved):
        for vm, source_host in reversed(moved):
            if vm.host is not None:
                vm.host.detach(vm)
            if source_host is not None and not source_host.try_attach(vm, check_cpu=False):
                logger.critical("Couldn't return VM %s to host %s", vm.vm_id, source_host.host_id)
                raise AllocationRestoreError(
                    f"Couldn't return VM {vm.vm_id} to host {source_host.host_id}")

    def find_host_for_vm(self, vm, excluded_hosts=None):
        """Default single-VM lookup; never proposes the host the VM is already on."""
        excluded_hosts = set(excluded_hosts or ())
        if vm.host is not None:
            excluded_hosts.add(vm.host)
        return self.default_ranking.find_host(vm, self.hosts, self.classifier, excluded_hosts)

    def allocate_host_for_vm(self, vm):
        """Initial placement of a VM that is not on any host yet."""
        host = self.find_host_for_vm(vm)
        if host is not None and host.try_attach(vm):
            logger.info("VM #%s placed on host #%s", vm.vm_id, host.host_id)
            return host
        logger.warning("No host can accommodate VM #%s", vm.vm_id)
        return None
