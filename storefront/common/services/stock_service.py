import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..models.product import Product
from .logging import log_event


@dataclass
class StockChange:
    product_id: str
    product_name: Optional[str]
    previous: Optional[int]
    current: int
    quantity: int

    @property
    def sold_out(self) -> bool:
        return self.current <= 0


class StockService:
    """Decrements and restores product stock.

    There is no locking: the atomic path relies on a single conditional
    UPDATE, the fallback path reads, checks and then writes with the same
    guard, so concurrent orders can still race when only the fallback runs.
    """

    def __init__(self, session_factory, atomic: bool = True):
        self._session_factory = session_factory
        self._atomic = atomic
        self.logger = logging.getLogger(__name__)

    def decrement(self, product_id: str, quantity: int) -> Optional[StockChange]:
        """Remove `quantity` units; None when stock is insufficient or the product is gone."""
        if quantity <= 0:
            self.logger.warning("Ignoring non-positive stock decrement for %s: %s", product_id, quantity)
            return None
        if self._atomic:
            try:
                return self._decrement_atomic(product_id, quantity)
            except SQLAlchemyError as exc:
                self.logger.warning("Atomic stock decrement unavailable, falling back: %s", exc)
        return self._decrement_fallback(product_id, quantity)

    def _decrement_atomic(self, product_id: str, quantity: int) -> Optional[StockChange]:
        with self._session_factory() as session:
            # in_stock first: MySQL evaluates SET assignments left to right
            result = session.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock_quantity >= quantity)
                .ordered_values(
                    (Product.in_stock, Product.stock_quantity > quantity),
                    (Product.stock_quantity, Product.stock_quantity - quantity),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                log_event("warning", "stock.insufficient", product_id=product_id, quantity=quantity)
                return None
            product = session.get(Product, product_id)
            change = StockChange(
                product_id=product_id,
                product_name=product.name if product else None,
                previous=None,
                current=int(product.stock_quantity) if product else 0,
                quantity=quantity,
            )
            log_event("info", "stock.decremented", product_id=product_id, quantity=quantity, stock=change.current, path="atomic")
            return change

    def _decrement_fallback(self, product_id: str, quantity: int) -> Optional[StockChange]:
        with self._session_factory() as session:
            product = session.get(Product, product_id)
            if product is None:
                self.logger.error("Product %s not found for stock update", product_id)
                return None
            current = int(product.stock_quantity or 0)
            if current < quantity:
                log_event("warning", "stock.insufficient", product_id=product_id, quantity=quantity, stock=current)
                return None
            new_stock = current - quantity
            result = session.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock_quantity >= quantity)
                .values(stock_quantity=new_stock, in_stock=new_stock > 0)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                log_event("warning", "stock.conflict", product_id=product_id, quantity=quantity)
                return None
            log_event("info", "stock.decremented", product_id=product_id, quantity=quantity, stock=new_stock, path="fallback")
            return StockChange(product_id, product.name, current, new_stock, quantity)

    def restore(self, items: Iterable[dict]) -> List[StockChange]:
        """Put cancelled quantities back; bad items are skipped, failures logged."""
        restored: List[StockChange] = []
        for item in items:
            product_id = item.get("product_id")
            quantity = int(item.get("quantity") or 0)
            if not product_id or quantity <= 0:
                self.logger.warning("Skipping item with missing product_id or quantity: %s", item)
                continue
            try:
                with self._session_factory() as session:
                    product = session.get(Product, product_id)
                    if product is None:
                        self.logger.error("Product %s not found for stock restoration", product_id)
                        continue
                    current = int(product.stock_quantity or 0)
                    product.stock_quantity = current + quantity
                    product.in_stock = product.stock_quantity > 0
                    restored.append(StockChange(product_id, product.name, current, product.stock_quantity, quantity))
            except SQLAlchemyError as exc:
                self.logger.error("Failed to restore stock for product %s: %s", product_id, exc)
                continue
            log_event("info", "stock.restored", product_id=product_id, quantity=quantity, stock=current + quantity)
        return restored
