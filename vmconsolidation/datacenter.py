# datacenter.py
import logging
from collections import deque

from .config import HOST_HISTORY_LENGTH

logger = logging.getLogger(__name__)


class Host:
    def __init__(self, host_id, num_cores, core_capacity, ram_capacity, storage_capacity=1000000,
                 cpu_oversub=1.0, ram_oversub=1.0, storage_oversub=1.0,
                 power_idle=100.0, power_max=250.0, boot_energy_joules=500.0, power_function=None):
        self.host_id = host_id
        self.num_cores = num_cores
        self.core_capacity = core_capacity
        self.ram_capacity = ram_capacity
        self.storage_capacity = storage_capacity
        self.cpu_oversub = cpu_oversub
        self.ram_oversub = ram_oversub
        self.storage_oversub = storage_oversub
        self.power_function = power_function
        self.boot_energy_joules = boot_energy_joules
        self.vms = []
        self.vms_migrating_in = []
        self.active = True

        # Linear power model, used unless a power_function is set
        self.power_idle = power_idle
        self.power_max = power_max

        # CPU utilization samples taken by the simulation, one per control interval
        self.utilization_history = deque(maxlen=HOST_HISTORY_LENGTH)

    @property
    def total_mips(self):
        return self.num_cores * self.core_capacity

    def utilization_of_cpu_mips(self):
        return sum(vm.current_requested_mips() for vm in self.vms)

    def utilization_of_cpu(self):
        utilization = self.utilization_of_cpu_mips() / self.total_mips
        # Rounding noise around full load
        if 1.0 < utilization < 1.01:
            utilization = 1.0
        return utilization

    def available_mips(self):
        return self.total_mips - self.utilization_of_cpu_mips()

    def ram_in_use(self):
        return sum(vm.ram for vm in self.vms)

    def storage_in_use(self):
        return sum(vm.storage for vm in self.vms)

    def record_utilization(self):
        self.utilization_history.append(min(self.utilization_of_cpu(), 1.0))

    def power_at(self, utilization):
        """
        Power draw (W) at the given CPU utilization fraction.

        :raises ValueError: if utilization is outside [0, 1]
        """
        if utilization < 0 or utilization > 1:
            raise ValueError(f"Utilization must be between 0 and 1, got {utilization}")
        if self.power_function:
            return self.power_function(utilization)
        return self.power_idle + (self.power_max - self.power_idle) * utilization

    def get_power(self):
        u = self.utilization_of_cpu()
        if not self.active and u == 0:
            return 0.0
        return self.power_at(min(u, 1.0))

    def max_power(self):
        return self.power_at(1.0)

    def available_power(self):
        return self.max_power() - self.get_power()

    def set_power_function(self, func):
        self.power_function = func

    def power_on(self):
        self.active = True
        logger.info("Host %s is now ON.", self.host_id)

    def power_off(self):
        self.active = False
        logger.info("Host %s is now OFF.", self.host_id)

    def is_suitable_for_vm(self, vm, check_cpu=True):
        if check_cpu and (self.utilization_of_cpu_mips() + vm.current_requested_mips()
                          > self.total_mips * self.cpu_oversub):
            return False
        return (self.ram_in_use() + vm.ram <= self.ram_capacity * self.ram_oversub and
                self.storage_in_use() + vm.storage <= self.storage_capacity * self.storage_oversub)

    def try_attach(self, vm, check_cpu=True):
        """
        Attach a VM to this host if it has room for it.
        Returns True on success, False otherwise; a refused VM leaves the host untouched.

        :param check_cpu: False when putting back a VM that already ran here; its CPU
                          demand may have grown past capacity since it was placed
        """
        if vm in self.vms:
            logger.debug("VM %s is already attached to Host %s.", vm.vm_id, self.host_id)
            return False
        if not self.is_suitable_for_vm(vm, check_cpu):
            logger.debug("Host %s cannot accommodate VM %s.", self.host_id, vm.vm_id)
            return False
        self.vms.append(vm)
        vm.host = self
        return True

    def detach(self, vm):
        if vm in self.vms:
            self.vms.remove(vm)
        if vm.host is self:
            vm.host = None

    def detach_all(self):
        for vm in self.vms:
            if vm.host is self:
                vm.host = None
        self.vms = []

    def reattach_pending_inbound(self):
        # VMs migrating in stay reserved on this host, their back-reference is still the source
        for vm in self.vms_migrating_in:
            if vm not in self.vms:
                self.vms.append(vm)

    def add_migrating_in(self, vm):
        if vm in self.vms or not self.is_suitable_for_vm(vm):
            return False
        vm.in_migration = True
        self.vms.append(vm)
        self.vms_migrating_in.append(vm)
        return True

    def finish_migration_in(self, vm):
        if vm in self.vms_migrating_in:
            self.vms_migrating_in.remove(vm)
        vm.in_migration = False
        vm.host = self

    def __str__(self):
        return (f"Host {self.host_id} | Cores: {self.num_cores} x {self.core_capacity} MIPS "
                f"= {self.total_mips} MIPS, RAM: {self.ram_capacity} MB, "
                f"Storage: {self.storage_capacity} GB")

    def __repr__(self):
        return f"Host({self.host_id!r})"


class VM:
    def __init__(self, vm_id, mips, ram, storage=0, cpu_demand_ratio=1.0):
        """
        VM represents a virtual machine with a fluctuating CPU demand.

        :param vm_id: Unique identifier
        :param mips: Requested CPU capacity in MIPS (Million Instructions Per Second)
        :param ram: RAM in MB
        :param storage: Storage in GB
        :param cpu_demand_ratio: Fraction of the requested MIPS currently in use (0 to 1)
        """
        self.vm_id = vm_id
        self.mips = mips
        self.ram = ram
        self.storage = storage
        self.cpu_demand_ratio = cpu_demand_ratio
        self.host = None
        self.in_migration = False

    def current_requested_mips(self):
        return self.mips * self.cpu_demand_ratio

    def set_cpu_demand_ratio(self, new_ratio):
        self.cpu_demand_ratio = min(max(new_ratio, 0.0), 1.0)

    def __str__(self):
        host_id = self.host.host_id if self.host else "None"
        return (f"VM {self.vm_id} | CPU: {self.mips} MIPS ({self.cpu_demand_ratio:.0%} in use), "
                f"RAM: {self.ram} MB, Storage: {self.storage} GB, Host: {host_id}")

    def __repr__(self):
        return f"VM({self.vm_id!r})"


class SimulationClock:
    """Simulated time in seconds, owned by the simulation loop."""

    def __init__(self, start=0.0):
        self.current_time = start

    def now(self):
        return self.current_time

    def advance(self, delta):
        self.current_time += delta
        return self.current_time
