# Scheduling Package
from .memory_model import MemoryModel, SchedulerParameters, parse_step
from .record import parent_node_from_record, state_from_record, state_to_record

__all__ = [
    "MemoryModel",
    "SchedulerParameters",
    "parse_step",
    "state_from_record",
    "state_to_record",
    "parent_node_from_record",
]
