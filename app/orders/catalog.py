"""
Product catalog lookups used by checkout.

The catalog is an external collaborator: checkout depends only on the
ProductCatalog protocol. StaticProductCatalog serves the shop's merch
collection from memory and is the default implementation.

Prices are kroner (Decimal); callers convert to øre.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True)
class Product:
    """A sellable product as known to the catalog."""

    id: str
    title: str
    price: Decimal
    sizes: tuple[str, ...] = ()
    image_urls: tuple[str, ...] = ()
    description: str = ""

    @property
    def image_url(self) -> str | None:
        return self.image_urls[0] if self.image_urls else None


class ProductCatalog(Protocol):
    """Read-only product lookup."""

    def get(self, product_id: str) -> Product | None: ...


MERCH_PRODUCTS: tuple[Product, ...] = (
    Product(
        id="1",
        title="Basic Tee",
        price=Decimal("299.00"),
        sizes=("XS", "S", "M", "L", "XL", "XXL"),
        image_urls=("/merch/basic-tee-front.png", "/merch/basic-tee-left.png"),
        description="Classic basic tee in premium cotton",
    ),
    Product(
        id="2",
        title="Tour Hoodie",
        price=Decimal("599.00"),
        sizes=("S", "M", "L", "XL", "XXL"),
        image_urls=(
            "/merch/tour-hoodie-back.png",
            "/merch/tour-hoodie-front.png",
            "/merch/tour-hoodie-left.png",
        ),
        description="Comfortable hoodie perfect for cold race days",
    ),
    Product(
        id="3",
        title="Basic Tour Tee",
        price=Decimal("349.00"),
        sizes=("XS", "S", "M", "L", "XL", "XXL"),
        image_urls=(
            "/merch/tour-basic-tee-back.png",
            "/merch/tour-basic-tee-front.png",
            "/merch/tour-basic-tee-left.png",
        ),
        description="Tour edition basic tee with special design",
    ),
    Product(
        id="4",
        title="Premium Tee",
        price=Decimal("399.00"),
        sizes=("S", "M", "L", "XL"),
        image_urls=("/merch/premium-tee-front.png", "/merch/premium-tee-left.png"),
        description="Premium quality t-shirt for true fans",
    ),
    Product(
        id="5",
        title="Bamse",
        price=Decimal("249.00"),
        sizes=("One Size",),
        image_urls=("/merch/bear-front.png", "/merch/bear-back.png"),
        description="Adorable teddy bear mascot",
    ),
)


@dataclass
class StaticProductCatalog:
    """In-memory catalog keyed by product id."""

    products: tuple[Product, ...] = MERCH_PRODUCTS
    _by_id: dict[str, Product] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {product.id: product for product in self.products}

    def get(self, product_id: str) -> Product | None:
        return self._by_id.get(str(product_id))

    def all(self) -> list[Product]:
        return list(self.products)


default_catalog = StaticProductCatalog()


__all__ = [
    "MERCH_PRODUCTS",
    "Product",
    "ProductCatalog",
    "StaticProductCatalog",
    "default_catalog",
]
