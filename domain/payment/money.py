"""金额精度：所有金额以货币最小单位（0.01）为粒度存储"""
from decimal import Decimal

MINOR_UNIT = Decimal("0.01")


def is_minor_unit_amount(value: Decimal) -> bool:
    """有限值且不超过 2 位小数"""
    value = Decimal(value)
    return value.is_finite() and value == value.quantize(MINOR_UNIT)
