"""Order request validation and delivery normalisation: pure functions.

Every check raises OrderValidationError with a message the buyer can act on.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from src.ft_common.districts import default_city_for, is_known_district
from src.ft_common.errors import OrderValidationError
from src.ft_order.domain.models import DeliveryAddress

REQUIRED_DELIVERY_FIELDS = ("first_name", "last_name", "phone", "address", "district")


@dataclass(frozen=True)
class OrderLine:
    """One requested line as sent by the client, before reservation."""
    product_id: str
    quantity: int
    price: int


def validate_lines(lines: Sequence[OrderLine]) -> None:
    if not lines:
        raise OrderValidationError("Order must contain at least one item")
    seen: set[str] = set()
    for line in lines:
        if not line.product_id or not line.product_id.strip():
            raise OrderValidationError("Each order item must have a productId")
        if line.quantity <= 0 or line.price <= 0:
            raise OrderValidationError("Quantity and price must be positive numbers")
        if line.product_id in seen:
            raise OrderValidationError(f"Duplicate product in order: {line.product_id}")
        seen.add(line.product_id)


def normalize_delivery(fields: Mapping[str, str | None]) -> DeliveryAddress:
    """Trim every field, require the mandatory ones, fill city from district."""
    cleaned = {k: (v or "").strip() for k, v in fields.items()}
    missing = [f for f in REQUIRED_DELIVERY_FIELDS if not cleaned.get(f)]
    if missing:
        raise OrderValidationError(f"Missing delivery fields: {', '.join(missing)}")

    district = cleaned["district"]
    if not is_known_district(district):
        raise OrderValidationError(f"Unknown district: {district}")

    city = cleaned.get("city", "")
    if not city:
        city = default_city_for(district)

    return DeliveryAddress(
        first_name=cleaned["first_name"],
        last_name=cleaned["last_name"],
        phone=cleaned["phone"],
        address=cleaned["address"],
        district=district,
        city=city,
        notes=cleaned.get("notes", ""),
    )
