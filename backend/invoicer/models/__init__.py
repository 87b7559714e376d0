from .tenancy import Tenant, Membership
from .settings import TenantSettings
from .customers import Customer
from .catalog import Product
from .documents import Document, DocumentItem, DocumentSequence, DocumentStatusEvent, DOCUMENT_KINDS

__all__ = [
    'Tenant', 'Membership', 'TenantSettings',
    'Customer', 'Product',
    'Document', 'DocumentItem', 'DocumentSequence', 'DocumentStatusEvent',
    'DOCUMENT_KINDS',
]
