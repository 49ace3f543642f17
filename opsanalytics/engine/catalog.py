"""
Catalog KPIs: how many products exist, how many are attached to an order,
and their average price.
"""

from opsanalytics.models.records import ProductRecord
from opsanalytics.models.report import CatalogStats

from .numbers import average


def catalog_stats(products: list[ProductRecord]) -> CatalogStats:
    """
    Summarize catalog products.

    Missing prices were normalized to 0.0 and count as such in the average.
    The average is None for an empty catalog.

    Example:
        >>> stats = catalog_stats(products)  # prices 10, 20, 30; two attached
        >>> (stats.total, stats.attached, stats.unattached, stats.average_price)
        (3, 2, 1, 20.0)
    """
    attached = sum(1 for product in products if product.attached_order_id)
    mean_price = average(product.price for product in products)
    return CatalogStats(
        total=len(products),
        attached=attached,
        unattached=len(products) - attached,
        average_price=round(mean_price, 2) if mean_price is not None else None,
    )
