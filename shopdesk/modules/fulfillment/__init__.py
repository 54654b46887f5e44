# shopdesk/modules/fulfillment/__init__.py

from .controller import FulfillmentController, OrderResult

__all__ = ["FulfillmentController", "OrderResult"]
