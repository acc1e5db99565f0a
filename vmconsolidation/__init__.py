from .allocation import AllocationRestoreError, AllocationSnapshot, MigrationEntry
from .datacenter import Host, VM, SimulationClock
from .optimizer import MigrationOptimizer
