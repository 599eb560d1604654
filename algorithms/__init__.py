from .math_tools import MathTools
from .weight_converter import WeightConverter

__all__ = ["MathTools", "WeightConverter"]
