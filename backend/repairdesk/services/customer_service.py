# Overview: Service-layer operations for customers.

from __future__ import annotations

from ..concurrency import unit_of_work
from ..context import Actor
from ..errors import NotFoundError
from ..extensions import db
from ..models import Customer
from ..validation import ModelValidationPolicy, validate_payload


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email"},
    required_on_create={"name"},
)


def create_customer(payload: dict, actor: Actor) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    with unit_of_work():
        customer = Customer(**patch)
        db.session.add(customer)
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(search: str | None = None) -> list[Customer]:
    q = db.session.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter((Customer.name.ilike(like)) | (Customer.phone.ilike(like)) | (Customer.email.ilike(like)))
    return q.order_by(Customer.name.asc(), Customer.id.asc()).all()
