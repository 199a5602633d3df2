"""Merchants (vendors) and customers as seen by settlement."""

from protean.fields import Identifier, String

from settlement.domain import settlement


@settlement.aggregate
class Vendor:
    name = String(required=True, max_length=255)
    email = String(max_length=254)
    stripe_account_id = String(max_length=255)


@settlement.aggregate
class Customer:
    email = String(required=True, max_length=254)
    name = String(max_length=255)
    user_id = Identifier()
