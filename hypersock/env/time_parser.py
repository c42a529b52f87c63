import re
from datetime import timedelta


class TimeParser:
    def __init__(self, time_amount: str) -> None:
        self._units = {
            "s": "seconds",
            "m": "minutes",
            "h": "hours",
            "d": "days",
            "w": "weeks",
        }

        self.time = self.parse(time_amount)

    def parse(self, time_amount: str) -> float:
        amounts: dict[str, float] = {}

        for match in re.finditer(
            r"(?P<val>\d+(\.\d+)?)(?P<unit>[smhdw]?)",
            time_amount,
            flags=re.I,
        ):
            unit = self._units.get(
                match.group("unit").lower(),
                "seconds",
            )
            amounts[unit] = amounts.get(unit, 0.0) + float(match.group("val"))

        if not amounts:
            raise ValueError(f"Invalid time amount - {time_amount!r}")

        return float(timedelta(**amounts).total_seconds())
