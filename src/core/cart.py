from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Protocol

from utils.logger import get_logger

_logger = get_logger(__name__)

CART_STORAGE_KEY = "gkp_cart"


# ---------------------------
# Device-local key/value storage
# ---------------------------


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """In-process storage, used by tests and guest sessions without a disk."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """
    Key/value strings kept in one JSON object on disk.

    The whole file is rewritten on every set; there is no locking, so two
    running instances sharing a file are last-write-wins.
    """

    def __init__(self, path: str):
        self.path = path

    def _read_all(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            _logger.warning(f"Local storage at {self.path} unreadable: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, data: Dict[str, str]) -> None:
        folder = os.path.dirname(self.path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def get_item(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)


# ---------------------------
# Cart
# ---------------------------


@dataclass(frozen=True)
class CartLineItem:
    product_id: int
    name: str
    product_code: str
    price: Decimal  # unit price frozen at add time
    mrp: Decimal
    quantity: int = 1
    image_url: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @property
    def line_mrp(self) -> Decimal:
        return self.mrp * self.quantity

    @property
    def line_savings(self) -> Decimal:
        return self.line_mrp - self.line_total


def _item_to_json(item: CartLineItem) -> dict:
    data = asdict(item)
    # Decimal -> str for JSON safety
    data["price"] = str(item.price)
    data["mrp"] = str(item.mrp)
    return data


def _item_from_json(data: dict) -> Optional[CartLineItem]:
    try:
        item = CartLineItem(
            product_id=int(data["product_id"]),
            name=str(data["name"]),
            product_code=str(data.get("product_code") or ""),
            price=Decimal(str(data["price"])),
            mrp=Decimal(str(data.get("mrp", data["price"]))),
            quantity=int(data["quantity"]),
            image_url=data.get("image_url"),
        )
    except (KeyError, TypeError, ValueError, InvalidOperation):
        return None
    if item.quantity < 1 or not item.price.is_finite() or not item.mrp.is_finite():
        return None
    return item


class CartStore:
    """
    Ordered collection of cart line items for one user session.

    Constructed by the App and handed to screens; totals are computed from the
    current items on every read. Every mutation writes the full item list to
    `storage` under `key`.
    """

    def __init__(self, storage: KeyValueStorage, key: str = CART_STORAGE_KEY):
        self._storage = storage
        self._key = key
        self._items: List[CartLineItem] = self._load()

    def _load(self) -> List[CartLineItem]:
        try:
            raw = self._storage.get_item(self._key)
        except OSError as e:
            _logger.warning(f"Could not read stored cart: {e}")
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            _logger.warning("Stored cart is corrupt, starting with an empty cart.")
            return []
        if not isinstance(data, list):
            _logger.warning("Stored cart has an unexpected shape, ignoring it.")
            return []

        items: List[CartLineItem] = []
        seen: set[int] = set()
        for row in data:
            item = _item_from_json(row) if isinstance(row, dict) else None
            if item is None or item.product_id in seen:
                _logger.debug(f"Dropping unreadable cart row: {row!r}")
                continue
            seen.add(item.product_id)
            items.append(item)
        return items

    def _persist(self) -> None:
        payload = json.dumps([_item_to_json(i) for i in self._items])
        try:
            self._storage.set_item(self._key, payload)
        except OSError as e:
            # the in-memory cart stays authoritative for this session
            _logger.error(f"Could not persist cart: {e}")

    # ---------- reads ----------

    @property
    def items(self) -> List[CartLineItem]:
        return list(self._items)

    def get_item(self, product_id: int) -> Optional[CartLineItem]:
        for item in self._items:
            if item.product_id == product_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def total_items(self) -> int:
        return sum(i.quantity for i in self._items)

    @property
    def total_amount(self) -> Decimal:
        return sum((i.line_total for i in self._items), Decimal(0))

    @property
    def total_mrp(self) -> Decimal:
        return sum((i.line_mrp for i in self._items), Decimal(0))

    @property
    def total_savings(self) -> Decimal:
        return self.total_mrp - self.total_amount

    # ---------- mutations ----------

    def add_item(self, item: CartLineItem, quantity: int = 1) -> None:
        """
        Add `quantity` units of `item`.
        If the product is already in the cart its quantity accumulates and the
        existing line (and its price) is kept.
        """
        if quantity <= 0:
            return
        for idx, existing in enumerate(self._items):
            if existing.product_id == item.product_id:
                self._items[idx] = replace(
                    existing, quantity=existing.quantity + quantity
                )
                break
        else:
            self._items.append(replace(item, quantity=quantity))
        self._persist()

    def update_quantity(self, product_id: int, quantity: int) -> None:
        """Set the quantity directly; zero or less removes the item."""
        if quantity <= 0:
            self.remove_item(product_id)
            return
        for idx, existing in enumerate(self._items):
            if existing.product_id == product_id:
                self._items[idx] = replace(existing, quantity=quantity)
                self._persist()
                return

    def remove_item(self, product_id: int) -> None:
        remaining = [i for i in self._items if i.product_id != product_id]
        if len(remaining) == len(self._items):
            return
        self._items = remaining
        self._persist()

    def clear_cart(self) -> None:
        self._items = []
        self._persist()
