"""
Documents for the Northwind walkthrough example.
"""

from __future__ import annotations

from blazedocs.core import (
    BooleanField,
    DateTimeField,
    Document,
    EmbeddedDocument,
    EmbeddedField,
    FloatField,
    IntegerField,
    ListField,
    ReferenceField,
    StringField,
)
from blazedocs.query import IndexDefinition
from blazedocs.validation import DocumentKeyValidator, MinValueValidator


class Address(EmbeddedDocument):
    line1 = StringField(nullable=True)
    city = StringField(nullable=True)
    country = StringField(nullable=True)


class Company(Document):
    name = StringField(nullable=False, max_length=120)
    phone = StringField(nullable=True)
    address = EmbeddedField(Address, nullable=True)


class Employee(Document):
    first_name = StringField(nullable=False)
    last_name = StringField(nullable=False)
    title = StringField(nullable=True)


class Product(Document):
    name = StringField(nullable=False, max_length=120)
    price_per_unit = FloatField(default=0.0, validators=[MinValueValidator(0)])
    units_in_stock = IntegerField(default=0, validators=[MinValueValidator(0)])
    discontinued = BooleanField(default=False)


class OrderLine(EmbeddedDocument):
    product = ReferenceField(Product, nullable=False, validators=[DocumentKeyValidator(Product)])
    product_name = StringField(nullable=True)
    price_per_unit = FloatField(default=0.0)
    quantity = IntegerField(default=1, validators=[MinValueValidator(1)])


class Order(Document):
    company = ReferenceField(Company, nullable=False, validators=[DocumentKeyValidator(Company)])
    employee = ReferenceField(Employee, nullable=True)
    ordered_at = DateTimeField(auto_now_add=True)
    lines = ListField(OrderLine)


class Example(Document):
    desc = StringField(nullable=True)


class DerivedExample(Example):
    sub_desc = StringField(nullable=True)


EXAMPLES_BY_DESC = IndexDefinition(
    name="Examples/ByDesc",
    sources=(Example, DerivedExample),
    fields=("desc",),
)
