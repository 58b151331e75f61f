"""
Service layer.

Services own transaction boundaries: each mutating call validates, writes,
adds its AuditLog row and commits (or rolls back) on its own.
"""
