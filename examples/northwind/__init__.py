"""
Northwind-style walkthrough showcasing BlazeDocs sessions end-to-end.
"""

from .demo import (
    bootstrap_store,
    load_order_with_relations,
    load_products,
    orders_for_company,
    run_demo,
    seed_sample_data,
    store_and_query_examples,
)
from .models import (
    EXAMPLES_BY_DESC,
    Address,
    Company,
    DerivedExample,
    Employee,
    Example,
    Order,
    OrderLine,
    Product,
)

__all__ = [
    "EXAMPLES_BY_DESC",
    "Address",
    "Company",
    "DerivedExample",
    "Employee",
    "Example",
    "Order",
    "OrderLine",
    "Product",
    "bootstrap_store",
    "load_order_with_relations",
    "load_products",
    "orders_for_company",
    "run_demo",
    "seed_sample_data",
    "store_and_query_examples",
]
