"""Fixed value sets accepted by the remote API and the validators that use them.

The sets are immutable; validators take the allowed set as an argument so
callers (and tests) can pass a narrower one.
"""

from collections.abc import Iterable

from cloudprovider.core.exceptions import AttributeValidationError

HARDWARE_PROFILES: frozenset[str] = frozenset(
    {"default", "legacy", "nested", "cisco_csr", "sophos_utm", "f5_bigip", "q35", "q35_nested"}
)
LEGACY_HARDWARE_PROFILE = "legacy"
AVAILABILITY_ZONES: frozenset[str] = frozenset({"a", "b", "c"})

MAX_STORAGES_PER_SERVER = 8
MAX_NETWORKS_PER_SERVER = 7


def validate_choice(attribute: str, value: str, allowed: frozenset[str]) -> str:
    if value not in allowed:
        raise AttributeValidationError(
            attribute,
            f"{value} is not a valid {attribute.replace('_', ' ')}. "
            f"Valid values are: {','.join(sorted(allowed))}",
        )
    return value


def validate_unique_orders(attribute: str, orders: Iterable[int]) -> None:
    """Firewall rule orders must be unique within one direction list."""
    seen: set[int] = set()
    for order in orders:
        if order in seen:
            raise AttributeValidationError(
                attribute, f"Duplicate firewall rule order {order} in {attribute}"
            )
        seen.add(order)


def validate_port(attribute: str, value: str) -> str:
    """Ports are a single number or a ``from:to`` range."""
    if not value:
        return value
    parts = value.split(":")
    if len(parts) > 2 or not all(p.isdigit() and 1 <= int(p) <= 65535 for p in parts):
        raise AttributeValidationError(attribute, f"{value} is not a valid port or port range")
    if len(parts) == 2 and int(parts[0]) > int(parts[1]):
        raise AttributeValidationError(attribute, f"{value} is not a valid port range")
    return value
