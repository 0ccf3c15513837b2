from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value, places=0):
    """Round like a report card does: .5 always goes up."""
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if places == 0 else float(rounded)


def percent(obtained, total, places=0):
    if not total or total <= 0:
        return 0
    return round_half_up(float(obtained) / float(total) * 100, places)
