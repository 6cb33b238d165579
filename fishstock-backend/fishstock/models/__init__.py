from fishstock.models.product import Product
from fishstock.models.movement import DamagedProduct, StockAddition, StockCorrection, StockMovement
from fishstock.models.sales import Sale
from fishstock.models.audit_log import AuditLog
