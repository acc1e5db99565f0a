# schedule.py
import logging
from contextlib import contextmanager

from .allocation import PlacementResult
from .classifiers import StaticThreshold

logger = logging.getLogger(__name__)


@contextmanager
def trial_attachment(host, vm):
    """
    Temporarily attach a VM to a host. Yields whether the attach succeeded.
    The host and the VM's back-reference are always put back on exit.
    """
    previous_host = vm.host
    attached = host.try_attach(vm)
    try:
        yield attached
    finally:
        if attached:
            host.detach(vm)
        vm.host = previous_host


def is_host_over_utilized_after_allocation(host, vm, classifier):
    with trial_attachment(host, vm) as attached:
        if not attached:
            return True
        return classifier.is_over_utilized(host)


def utilization_after_allocation(host, vm):
    return (host.utilization_of_cpu_mips() + vm.current_requested_mips()) / host.total_mips


def try_place(host, vm, classifier):
    """
    Check whether a VM could go to a host, without committing anything.

    A host qualifies if it has room for the VM and is not over-utilized once the VM
    is on it. Hosts with no load at all skip the over-utilization check so empty
    hosts can be switched on.
    """
    if not host.is_suitable_for_vm(vm):
        return PlacementResult(False, "insufficient capacity")
    try:
        over_utilized = (host.utilization_of_cpu_mips() != 0
                         and is_host_over_utilized_after_allocation(host, vm, classifier))
    except Exception as e:
        logger.debug("Trial placement of VM %s on host %s failed", vm.vm_id, host.host_id, exc_info=True)
        return PlacementResult(False, f"trial placement failed: {e}")
    if over_utilized:
        return PlacementResult(False, "over-utilized after allocation")
    try:
        power_after = host.power_at(utilization_after_allocation(host, vm))
    except ValueError as e:
        return PlacementResult(False, f"power model: {e}")
    return PlacementResult(True, power_after=power_after)


def sort_hosts_by_available_power(hosts):
    return sorted(hosts, key=lambda h: h.available_power(), reverse=True)


class HostRankingStrategy:
    """Picks a destination host for one VM, or None when no host is feasible."""

    name = None

    def find_host(self, vm, hosts, classifier, excluded=()):
        raise NotImplementedError


class PowerDeltaRanking(HostRankingStrategy):
    def __init__(self, direction="min"):
        """
        :param direction: "min" picks the host whose power grows least (best fit),
                          "max" the one whose power grows most (worst fit)
        """
        if direction not in ("min", "max"):
            raise ValueError(f"Unknown ranking direction: {direction}")
        self.direction = direction
        self.name = f"{direction}_power"

    def _better(self, delta, best_delta):
        if self.direction == "min":
            return delta < best_delta
        return delta > best_delta

    def find_host(self, vm, hosts, classifier, excluded=()):
        allocated_host = None
        best_delta = None
        for host in hosts:
            if host in excluded:
                continue
            result = try_place(host, vm, classifier)
            if not result.feasible:
                logger.debug("Host %s rejected for VM %s: %s", host.host_id, vm.vm_id, result.reason)
                continue
            power_delta = result.power_after - host.get_power()
            if best_delta is None or self._better(power_delta, best_delta):
                best_delta = power_delta
                allocated_host = host
        return allocated_host


class FirstFitAvailablePower(HostRankingStrategy):
    """First feasible host, hosts taken in decreasing order of available power."""

    name = "ffd_available_power"

    def find_host(self, vm, hosts, classifier, excluded=()):
        for host in sort_hosts_by_available_power(hosts):
            if host in excluded:
                continue
            result = try_place(host, vm, classifier)
            if result.feasible and result.power_after < host.max_power():
                return host
        return None


class FirstFit(HostRankingStrategy):
    name = "first_fit"

    def find_host(self, vm, hosts, classifier, excluded=()):
        for host in hosts:
            if host in excluded:
                continue
            if try_place(host, vm, classifier).feasible:
                return host
        return None


def get_ranking_strategy(name):
    if name == "min_power":
        return PowerDeltaRanking("min")
    elif name == "max_power":
        return PowerDeltaRanking("max")
    elif name == "ffd_available_power":
        return FirstFitAvailablePower()
    elif name == "first_fit":
        return FirstFit()
    else:
        raise ValueError(f"Unknown host ranking strategy: {name}")


class SchedulerVM:
    def __init__(self, hosts, policy="ffd_available_power", classifier=None):
        """
        Scheduler to assign newly arriving VMs to Hosts based on a given policy.

        :param hosts: list of Host objects
        :param policy: host ranking strategy name ("ffd_available_power", "min_power", ...)
        :param classifier: utilization classifier guarding against over-utilized targets
        """
        self.hosts = hosts
        self.classifier = classifier or StaticThreshold()
        self.boot_energy_total = 0.0  # Track total boot energy
        self.set_policy(policy)

    def schedule_vm(self, vm):
        """
        Assigns a VM to a suitable host based on selected policy.
        Returns True if scheduling succeeded, False otherwise.
        """
        candidate_host = self.strategy.find_host(vm, self.hosts, self.classifier)

        if candidate_host and candidate_host.try_attach(vm):
            if not candidate_host.active:
                candidate_host.power_on()
                self.boot_energy_total += candidate_host.boot_energy_joules
            logger.info("Scheduler: VM %s assigned to Host %s using '%s'",
                        vm.vm_id, candidate_host.host_id, self.policy)
            return True
        logger.warning("Scheduler: No suitable host found for VM %s with policy '%s'", vm.vm_id, self.policy)
        return False

    def set_policy(self, policy):
        self.strategy = get_ranking_strategy(policy)
        self.policy = policy

    def get_total_boot_energy(self):
        return self.boot_energy_total
