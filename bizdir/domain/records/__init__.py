"""This module holds approved business records and their audit history."""
from .entities import AuditEntry, BusinessRecord, OperatingDay, Product, RecordStatus, derive_discount
