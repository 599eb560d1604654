class WeightConverter:
    """Utility for converting between kg and lb."""

    KG_TO_LB = 2.20462
    UNITS = ("kg", "lbs")

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / WeightConverter.KG_TO_LB, 2)

    @classmethod
    def convert(cls, value: float, from_unit: str, to_unit: str) -> float:
        """Convert ``value`` between ``kg`` and ``lbs``."""
        for unit in (from_unit, to_unit):
            if unit not in cls.UNITS:
                raise ValueError(f"unknown weight unit {unit}")
        if from_unit == to_unit:
            return float(value)
        if from_unit == "kg":
            return cls.kg_to_lb(value)
        return cls.lb_to_kg(value)
