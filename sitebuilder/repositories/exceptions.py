# sitebuilder/repositories/exceptions.py
"""
Storage-level failures raised by repositories.

Services translate them into API errors (sitebuilder.core.errors) or into
the reconciliation path; repositories themselves never import FastAPI.
"""


class InsufficientStockError(Exception):
    def __init__(self, product_variant_id: int, requested: int):
        super().__init__(
            f"Variant {product_variant_id} has less than {requested} in stock"
        )
        self.product_variant_id = product_variant_id
        self.requested = requested


class QuantityExhaustedError(Exception):
    """A coupon or discount code has no uses left."""

    def __init__(self, entity: str, entity_id: int):
        super().__init__(f"{entity} {entity_id} has no remaining quantity")
        self.entity = entity
        self.entity_id = entity_id


class AlreadyRedeemedError(Exception):
    def __init__(self, customer_id: int, discount_id: int):
        super().__init__(
            f"Customer {customer_id} already redeemed discount {discount_id}"
        )
        self.customer_id = customer_id
        self.discount_id = discount_id
