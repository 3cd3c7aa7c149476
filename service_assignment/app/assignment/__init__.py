from .selector import LeastLoadSelector
from .writer import AssignmentWriter, determine_assignment_type

__all__ = ["AssignmentWriter", "LeastLoadSelector", "determine_assignment_type"]
