"""
Audit trail of staff actions.
"""
from tourney.audit.audit_log import AuditLog, AuditEntry

__all__ = ['AuditLog', 'AuditEntry']
