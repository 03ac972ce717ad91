"""Central model registry: import all models so create_all sees every table."""

from erp.database import Base  # noqa: F401

from erp.models.accounts_payable import AccountsPayable, VendorPayment  # noqa: F401
from erp.models.quotation import Quotation, QuotationLineItem  # noqa: F401
from erp.models.purchase_request import PurchaseRequest, RfqItem  # noqa: F401
from erp.models.purchase_order import PurchaseOrder  # noqa: F401
