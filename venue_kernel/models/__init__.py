"""ORM models. Importing this package registers every table on Base.metadata."""

from venue_kernel.models.client import ClientModel
from venue_kernel.models.invoice import InvoiceItemModel, InvoiceModel, PaymentModel
from venue_kernel.models.product import ProductModel
from venue_kernel.models.sequence import SequenceCounter

__all__ = [
    "ClientModel",
    "InvoiceModel",
    "InvoiceItemModel",
    "PaymentModel",
    "ProductModel",
    "SequenceCounter",
]
