"""
Utility helpers for running the Northwind walkthrough end-to-end.
"""

from __future__ import annotations

from typing import Any, Dict, List

from blazedocs.persistence import DocumentStore
from blazedocs.query import Q

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


def bootstrap_store(dsn: str = "sqlite:///:memory:") -> DocumentStore:
    """
    Create an initialized store with the example index deployed.
    """

    store = DocumentStore(dsn)
    store.register_index(EXAMPLES_BY_DESC)
    return store.initialize()


def seed_sample_data(store: DocumentStore) -> Dict[str, List[str]]:
    """
    Populate products, companies, employees and orders with fixed keys.
    """

    products = [
        Product(id="products/1", name="Chai", price_per_unit=18.0, units_in_stock=39),
        Product(id="products/2", name="Chang", price_per_unit=19.0, units_in_stock=17),
        Product(id="products/3", name="Aniseed Syrup", price_per_unit=10.0, units_in_stock=13),
        Product(id="products/4", name="Chef Anton's Cajun Seasoning", price_per_unit=22.0),
        Product(id="products/5", name="Chef Anton's Gumbo Mix", price_per_unit=21.35, discontinued=True),
        Product(id="products/6", name="Grandma's Boysenberry Spread", price_per_unit=25.0),
    ]
    companies = [
        Company(
            id="companies/1",
            name="Alfreds Futterkiste",
            phone="030-0074321",
            address=Address(line1="Obere Str. 57", city="Berlin", country="Germany"),
        ),
        Company(id="companies/2", name="Ana Trujillo Emparedados y helados", phone="(5) 555-4729"),
    ]
    employees = [
        Employee(id="employees/1", first_name="Nancy", last_name="Davolio", title="Sales Representative"),
        Employee(id="employees/2", first_name="Andrew", last_name="Fuller", title="Vice President, Sales"),
    ]
    orders = [
        Order(
            id="orders/1",
            company="companies/1",
            employee="employees/1",
            lines=[
                OrderLine(product="products/1", product_name="Chai", price_per_unit=18.0, quantity=2),
                OrderLine(product="products/2", product_name="Chang", price_per_unit=19.0, quantity=1),
                OrderLine(product="products/3", product_name="Aniseed Syrup", price_per_unit=10.0, quantity=5),
            ],
        ),
        Order(
            id="orders/2",
            company="companies/1",
            employee="employees/2",
            lines=[OrderLine(product="products/4", product_name="Chef Anton's Cajun Seasoning", price_per_unit=22.0)],
        ),
        Order(
            id="orders/3",
            company="companies/2",
            employee="employees/1",
            lines=[OrderLine(product="products/6", product_name="Grandma's Boysenberry Spread", price_per_unit=25.0)],
        ),
    ]

    with store.open_session() as session:
        for document in [*products, *companies, *employees, *orders]:
            session.store(document)
        session.commit()

    return {
        "products": [product.id for product in products],
        "companies": [company.id for company in companies],
        "employees": [employee.id for employee in employees],
        "orders": [order.id for order in orders],
    }


def load_products(store: DocumentStore) -> Dict[str, Any]:
    """
    Load the same product twice (one request), then three products at once (one request).
    """

    with store.open_session() as session:
        first = session.load("products/1", Product)
        second = session.load("products/1", Product)
        single = session.load("products/3", Product)
        batch = session.load_many(["products/4", "products/5", "products/6"], Product)
        return {
            "same_instance": first is second,
            "names": [first.name, single.name] + [p.name for p in batch.values() if p is not None],
            "requests": session.number_of_requests,
        }


def load_order_with_relations(store: DocumentStore, order_key: str = "orders/1") -> Dict[str, Any]:
    """
    Load an order with its company, employee and line products in one round-trip.
    """

    with store.open_session() as session:
        order = (
            session.include("company")
            .include("employee")
            .include("lines.product")
            .load(order_key, Order)
        )
        if order is None:
            return {}
        company = session.load(order.company, Company)
        employee = session.load(order.employee, Employee)
        products = session.load_many([line.product for line in order.lines], Product)
        return {
            "order": order.id,
            "company": company.name,
            "employee": f"{employee.first_name} {employee.last_name}",
            "lines": [
                {"product": products[line.product].name, "price_per_unit": line.price_per_unit}
                for line in order.lines
            ],
            "requests": session.number_of_requests,
        }


def store_and_query_examples(store: DocumentStore) -> List[Dict[str, Any]]:
    """
    Store a base and a derived example, then read both back through the index.
    """

    with store.open_session() as session:
        session.store(Example(desc="not so random description"))
        session.store(DerivedExample(desc="This is a derived example. :)", sub_desc="hmm, work we must."))
        session.commit()

        results = session.query(Example, index=EXAMPLES_BY_DESC.name).order_by("desc").to_list()
        return [
            {"id": example.id, "desc": example.desc, "type": type(example).__name__}
            for example in results
        ]


def orders_for_company(store: DocumentStore, company_key: str) -> List[Dict[str, Any]]:
    """
    Query orders placed by one company, prefetching the company document.
    """

    with store.open_session() as session:
        orders = (
            session.query(Order)
            .where(Q(company=company_key))
            .include("company")
            .order_by("id")
            .to_list()
        )
        company = session.load(company_key, Company)
        return [
            {
                "order": order.id,
                "ordered_at": order.ordered_at.isoformat() if order.ordered_at else None,
                "company": company.name if company else None,
            }
            for order in orders
        ]


def run_demo(dsn: str = "sqlite:///:memory:") -> Dict[str, Any]:
    """
    Run the full walkthrough and return a summary of each step.
    """

    store = bootstrap_store(dsn)
    try:
        seed_sample_data(store)
        return {
            "products": load_products(store),
            "order": load_order_with_relations(store),
            "examples": store_and_query_examples(store),
            "company_orders": orders_for_company(store, "companies/1"),
        }
    finally:
        store.close()


if __name__ == "__main__":  # pragma: no cover
    from pprint import pprint

    pprint(run_demo())
